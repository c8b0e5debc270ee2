"""
Command-line interface for blobwatch.

Connects to a Celestia light node and either watches new headers for blobs
in a namespace or runs a blob submission round-trip.
"""
import asyncio
import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Optional

import typer
from pydantic import ValidationError

from blobwatch.core.config import DEFAULT_NODE_URL, BlobwatchConfig, load_config_from_env
from blobwatch.core.errors import BlobwatchError, ConstructionError, RpcError
from blobwatch.core.models.blob import SubmitOptions
from blobwatch.core.models.namespace import Namespace
from blobwatch.core.rpc.client import CelestiaRpcClient
from blobwatch.core.submit import DEFAULT_PAYLOAD, submit_and_verify
from blobwatch.core.watcher import BlobWatcher

logger = logging.getLogger("blobwatch.cli")

app = typer.Typer(help="Watch a Celestia namespace for blobs through a light node")

MISSING_TOKEN_WARNING = [
    "WARNING: The authentication token is not provided. Make sure the light node is running with --rpc.skip-auth",
    "  i.e. `celestia light start --core.ip rpc.celestia.pops.one --p2p.network celestia --rpc.skip-auth`",
    "  If you are running a full node, you can set the token with `export CELESTIA_NODE_AUTH_TOKEN=<token>`",
    "",
]


class _BelowLevel(logging.Filter):
    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def configure_logging(verbose: bool = False) -> None:
    """Send reports to stdout and warnings/errors to stderr.

    Stdout lines are the bare message; stderr lines are prefixed with the
    level name, e.g. ``ERROR: Error fetching blobs: ...``.
    """
    out = logging.StreamHandler(sys.stdout)
    out.setFormatter(logging.Formatter("%(message)s"))
    out.addFilter(_BelowLevel(logging.WARNING))

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    package_logger = logging.getLogger("blobwatch")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.addHandler(out)
    package_logger.addHandler(err)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False


def get_version() -> str:
    try:
        return package_version("celestia-blobwatch")
    except PackageNotFoundError:
        return "0.0.0+unknown"


def version_callback(value: bool):
    if value:
        typer.echo(f"blobwatch {get_version()}")
        raise typer.Exit()


def format_token(token: Optional[str]) -> str:
    """Render the token the way the banner shows it: None or Some("...")."""
    if token is None:
        return "None"
    return f"Some({json.dumps(token, ensure_ascii=False)})"


def print_banner(config: BlobwatchConfig) -> None:
    typer.echo(f"URL: {config.celestia_node_url}")
    typer.echo(f"Token: {format_token(config.celestia_node_auth_token)}")
    if config.celestia_node_auth_token is None:
        for line in MISSING_TOKEN_WARNING:
            typer.echo(line)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    celestia_node_url: str = typer.Option(
        DEFAULT_NODE_URL,
        "--celestia-node-url",
        "-u",
        envvar="CELESTIA_NODE_URL",
        help="URL of the Celestia node; use ws:// or wss:// to subscribe to headers",
    ),
    celestia_node_auth_token: Optional[str] = typer.Option(
        None,
        "--celestia-node-auth-token",
        "-t",
        envvar="CELESTIA_NODE_AUTH_TOKEN",
        help="Auth token for the node; omit it when the node runs with --rpc.skip-auth",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log RPC traffic"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="Show the version and exit"
    ),
):
    """Connect to a Celestia light node. Runs `watch` when no command is given."""
    configure_logging(verbose)

    if celestia_node_auth_token is not None and celestia_node_auth_token == "":
        raise typer.BadParameter(
            "must not be empty; omit it to connect without authentication",
            param_hint="'--celestia-node-auth-token'",
        )

    try:
        settings = load_config_from_env().model_dump()
        settings.update(
            celestia_node_url=celestia_node_url,
            celestia_node_auth_token=celestia_node_auth_token,
        )
        config = BlobwatchConfig(**settings)
    except (ValidationError, ValueError) as e:
        typer.echo(f"ERROR: Invalid configuration: {e}", err=True)
        raise typer.Exit(code=2)

    ctx.obj = config
    print_banner(config)

    if ctx.invoked_subcommand is None:
        run_watch(config)


@app.command()
def watch(ctx: typer.Context):
    """Subscribe to new headers and count the blobs in the namespace at each height."""
    run_watch(ctx.obj)


@app.command()
def submit(
    ctx: typer.Context,
    data: str = typer.Option(
        DEFAULT_PAYLOAD.decode(), "--data", "-d", help="Payload to submit (UTF-8 text)"
    ),
    gas_price: Optional[float] = typer.Option(
        None, "--gas-price", min=0.0, help="Gas price hint in utia; the node chooses when omitted"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", min=0.0, help="Seconds to wait for inclusion"
    ),
):
    """Submit a blob, read it back and check data and commitment match."""
    config: BlobwatchConfig = ctx.obj
    try:
        options = SubmitOptions(gas_price=gas_price, timeout=timeout or None)
    except ValidationError as e:
        raise typer.BadParameter(str(e))

    height = _run(submit_blob(config, data.encode(), options))
    typer.echo(f"Blob round-trip verified at height {height}")


@app.command()
def head(ctx: typer.Context):
    """Print the latest header known to the network."""
    header = _run(network_head(ctx.obj))
    typer.echo(f"Network head: {header}")


def run_watch(config: BlobwatchConfig) -> None:
    summary = _run(watch_headers(config))
    logger.info(
        f"Header stream ended after {summary.headers} headers "
        f"({summary.header_errors} header errors, {summary.query_errors} query errors)"
    )


def _run(coro):
    """Run a coroutine, mapping errors to exit codes."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        raise typer.Exit(code=0)
    except BlobwatchError as e:
        logger.error(str(e))
        raise typer.Exit(code=1)


async def connect(config: BlobwatchConfig) -> CelestiaRpcClient:
    try:
        return await CelestiaRpcClient.connect(
            config.celestia_node_url,
            config.celestia_node_auth_token,
            connect_timeout=config.connect_timeout,
        )
    except ConstructionError as e:
        raise ConstructionError(f"Failed creating rpc client: {e}") from e


async def watch_headers(config: BlobwatchConfig):
    namespace = Namespace.new_v0(config.namespace_bytes)
    client = await connect(config)
    async with client:
        watcher = BlobWatcher(client, namespace, label=config.namespace_label)
        try:
            return await watcher.run()
        except RpcError as e:
            raise RpcError(f"Failed subscribing to incoming headers: {e.message}", code=e.code) from e


async def network_head(config: BlobwatchConfig):
    client = await connect(config)
    async with client:
        return await client.header_network_head()


async def submit_blob(config: BlobwatchConfig, data: bytes, options: SubmitOptions) -> int:
    namespace = Namespace.new_v0(config.namespace_bytes)
    client = await connect(config)
    async with client:
        height, _ = await submit_and_verify(client, namespace, data, options)
        return height


if __name__ == "__main__":
    app()
