"""moexfeed CLI - run the MOEX ISS → Kafka trade collector.

Usage:
    moexfeed run                    # poll until SIGINT/SIGTERM
    moexfeed once                   # one collection cycle, then exit
    moexfeed watermark show
    moexfeed watermark set 9876543210

Configuration comes from MOEXFEED_* environment variables (see
moexfeed.common.config). Entry point configured in pyproject.toml as
'moexfeed'.
"""

import asyncio
import signal
from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from moexfeed import __version__
from moexfeed.common.config import config
from moexfeed.common.logging import configure_logging, get_logger
from moexfeed.common.metrics import initialize_metrics, serve_metrics
from moexfeed.ingestion.collector import Collector, CycleResult
from moexfeed.ingestion.exceptions import CheckpointError, CollectorError
from moexfeed.ingestion.iss_client import IssClient
from moexfeed.ingestion.models import canonical_trade_id, is_numeric_trade_id
from moexfeed.ingestion.publisher import KafkaTradePublisher
from moexfeed.ingestion.watermark import FileWatermarkStore

app = typer.Typer(
    name="moexfeed",
    help="Collect MOEX ISS trades into Kafka.",
    add_completion=False,
    no_args_is_help=True,
)
watermark_app = typer.Typer(help="Inspect or override the persisted watermark.", no_args_is_help=True)
app.add_typer(watermark_app, name="watermark")

console = Console()
logger = get_logger(__name__, component="cli")


def _setup_observability(expose_metrics: bool) -> None:
    obs = config.observability
    configure_logging(json_output=obs.json_logs, log_level=obs.log_level)
    initialize_metrics(__version__, config.environment, config.iss.engine, config.iss.market)
    if expose_metrics and obs.enable_metrics:
        serve_metrics(obs.prometheus_port)
        logger.info("Prometheus metrics exposed", port=obs.prometheus_port)


def _build_collector(client: IssClient, publisher: KafkaTradePublisher) -> Collector:
    return Collector(
        fetcher=client,
        publisher=publisher,
        store=FileWatermarkStore(config.collector.state_file_path),
    )


async def _serve() -> None:
    loop = asyncio.get_running_loop()
    publisher = KafkaTradePublisher()

    try:
        async with IssClient() as client:
            collector = _build_collector(client, publisher)
            task = asyncio.create_task(collector.run(), name="collector")

            def _request_shutdown(signum: signal.Signals) -> None:
                logger.info("Shutdown signal received", signal=signum.name)
                task.cancel()

            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(signum, _request_shutdown, signum)

            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
    finally:
        publisher.close()

    logger.info("moexfeed stopped")


async def _run_once() -> CycleResult:
    publisher = KafkaTradePublisher()
    try:
        async with IssClient() as client:
            collector = _build_collector(client, publisher)
            return await collector.run_cycle()
    finally:
        publisher.close()


@app.command()
def run():
    """
    Poll ISS on the configured interval and publish new trades.

    Stops gracefully on SIGINT/SIGTERM.
    """
    _setup_observability(expose_metrics=True)
    logger.info(
        "Starting moexfeed",
        version=__version__,
        engine=config.iss.engine,
        market=config.iss.market,
        topic=config.kafka.topic,
        poll_interval=config.collector.poll_interval,
    )
    asyncio.run(_serve())


@app.command()
def once():
    """
    Run a single collection cycle and print its outcome.
    """
    _setup_observability(expose_metrics=False)

    try:
        result = asyncio.run(_run_once())
    except CollectorError as err:
        console.print(f"[red]Cycle failed:[/red] {err}")
        raise typer.Exit(code=1)

    table = Table(title="Collection cycle", box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Status", result.status.value)
    table.add_row("Published", str(result.published))
    table.add_row("Watermark before", result.watermark_before or "-")
    table.add_row("Watermark after", result.watermark_after or "-")
    table.add_row("Checkpointed", "yes" if result.checkpointed else "[red]no[/red]")
    table.add_row("Duration", f"{result.duration_seconds:.3f}s")
    console.print(table)


@watermark_app.command("show")
def watermark_show(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Watermark file (default: from config)"),
):
    """
    Print the persisted watermark.
    """
    store = FileWatermarkStore(path or config.collector.state_file_path)
    value = store.load()
    if value:
        console.print(f"Watermark at {store.path}: [bold]{value}[/bold]")
    else:
        console.print(f"No watermark at {store.path}; collection starts from the latest page")


@watermark_app.command("set")
def watermark_set(
    value: str = typer.Argument(..., help="Trade number to resume after"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Watermark file (default: from config)"),
):
    """
    Overwrite the persisted watermark. Run only while the collector is stopped.
    """
    watermark = canonical_trade_id(value)
    if not watermark:
        raise typer.BadParameter("watermark cannot be empty")
    if not is_numeric_trade_id(watermark):
        raise typer.BadParameter(f"watermark must be a numeric ISS trade number, got {value!r}")

    store = FileWatermarkStore(path or config.collector.state_file_path)
    try:
        store.save(watermark)
    except CheckpointError as err:
        console.print(f"[red]{err}[/red]")
        raise typer.Exit(code=1)

    console.print(f"Watermark at {store.path} set to [bold]{watermark}[/bold]")


def main():
    app()


if __name__ == "__main__":
    main()
