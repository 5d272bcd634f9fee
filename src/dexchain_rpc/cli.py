"""dexchain-rpc CLI.

Usage:
    dexchain-rpc status                               # Node status
    dexchain-rpc status --format json                 # Node status as JSON
    dexchain-rpc call block --params '{"height": "5"}'
    dexchain-rpc subscribe "tm.event='NewBlock'" -n 3 # Print three events
    dexchain-rpc health --url http://127.0.0.1:26657  # HTTP health probe

    dexchain-rpc --node tcp://10.0.0.5:26657 status   # Another node
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click
import httpx

from .config import SessionConfig
from .errors import RPCClientError
from .rpc import RPCClient, create_client

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

DEFAULT_NODE = "tcp://127.0.0.1:26657"


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


@click.group()
@click.option("--node", default=DEFAULT_NODE, envvar="DEXCHAIN_RPC_NODE", help="Node address")
@click.option("--endpoint", default="/websocket", help="WebSocket endpoint path")
@click.option("--timeout", type=float, default=None, help="Per-call timeout in seconds")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging level (logs go to stderr)",
)
@click.pass_context
def main(
    ctx: click.Context,
    node: str,
    endpoint: str,
    timeout: float | None,
    log_level: str,
) -> None:
    """dexchain-rpc - talk to a chain node over its WebSocket RPC."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    overrides: dict[str, Any] = {}
    if timeout is not None:
        overrides["timeout"] = timeout
    ctx.obj = {
        "node": node,
        "endpoint": endpoint,
        "config": SessionConfig.from_env(**overrides),
    }


async def _connect(obj: dict[str, Any]) -> RPCClient:
    return await create_client(obj["node"], obj["endpoint"], obj["config"])


def _run(coro: Any) -> None:
    """Run a command coroutine, turning client errors into exit code 1."""
    try:
        asyncio.run(coro)
    except RPCClientError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)


@main.command()
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_obj
def status(obj: dict[str, Any], output_format: str) -> None:
    """Show node status."""

    async def run() -> None:
        async with await _connect(obj) as client:
            result = await client.status()

        if output_format == FORMAT_JSON:
            click.echo(_dump(result.model_dump(mode="json")))
            return

        info = result.node_info
        sync = result.sync_info
        click.echo(f"Node:       {info.id or '?'} ({info.moniker or 'unnamed'})")
        click.echo(f"Network:    {info.network or '?'}")
        click.echo(f"Version:    {info.version or '?'}")
        click.echo(f"Height:     {sync.latest_block_height}")
        click.echo(f"Block time: {sync.latest_block_time or 'N/A'}")
        click.echo(f"Catching up: {'yes' if sync.catching_up else 'no'}")

    _run(run())


@main.command()
@click.argument("method")
@click.option("--params", "-p", default="{}", help="Call parameters as a JSON object")
@click.pass_obj
def call(obj: dict[str, Any], method: str, params: str) -> None:
    """Call any RPC METHOD and print the raw result.

    Examples:

        dexchain-rpc call net_info

        dexchain-rpc call abci_query -p '{"path": "/store/acc/key", "data": "AB"}'
    """
    try:
        parsed = json.loads(params)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--params") from e
    if not isinstance(parsed, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--params")

    async def run() -> None:
        async with await _connect(obj) as client:
            result = await client.session.call(method, parsed)
        click.echo(_dump(result))

    _run(run())


@main.command()
@click.argument("query")
@click.option("--count", "-n", default=0, help="Stop after N events (0 = until interrupted)")
@click.pass_obj
def subscribe(obj: dict[str, Any], query: str, count: int) -> None:
    """Subscribe to QUERY and print each event as one JSON line.

    Examples:

        dexchain-rpc subscribe "tm.event='NewBlock'" -n 1
    """

    async def run() -> None:
        async with await _connect(obj) as client:
            stream = await client.subscribe(query)
            received = 0
            async for event in stream:
                click.echo(json.dumps(event.model_dump(mode="json"), default=str))
                received += 1
                if count and received >= count:
                    break

    _run(run())


@main.command()
@click.option("--url", default="http://127.0.0.1:26657", help="Node HTTP address")
def health(url: str) -> None:
    """Check node health over plain HTTP."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{url.rstrip('/')}/health")
                if response.status_code == 200:
                    click.echo(f"Node is healthy: {_dump(response.json())}")
                else:
                    click.echo(f"Node returned {response.status_code}", err=True)
                    sys.exit(1)
        except httpx.ConnectError:
            click.echo(f"Cannot connect to node at {url}", err=True)
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
