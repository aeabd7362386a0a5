"""CLI entrypoints for BeaconGate."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

import typer

from beacongate.config import load_settings
from beacongate.db.session import create_db_engine, init_db
from beacongate.logging import configure_logging, get_logger
from beacongate.queue.backends import RedisJobQueue
from beacongate.wiring import build_app_context

app = typer.Typer(add_completion=False, help="BeaconGate evidence capture and review pipeline")
logger = get_logger(__name__)


@app.command("init-db")
def init_db_command() -> None:
    """Create all tables in the configured database."""

    settings = load_settings()
    configure_logging(settings.log_level)
    init_db(create_db_engine(settings.database_url))
    typer.echo(f"Initialized {settings.database_url}")


@app.command()
def worker(
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", help="Simultaneous capture jobs (overrides BEACONGATE_WORKER_CONCURRENCY)"
    ),
    recover: bool = typer.Option(
        False, "--recover", help="Requeue jobs left in flight by a crashed worker before consuming"
    ),
) -> None:
    """Run the capture worker until interrupted."""

    settings = load_settings()
    if concurrency is not None:
        settings.worker_concurrency = concurrency
    configure_logging(settings.log_level)
    context = build_app_context(settings)
    if recover and isinstance(context.queue, RedisJobQueue):
        context.queue.recover_in_flight()

    async def _main() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        await context.worker().run(stop)

    logger.info("CLI worker requested")
    asyncio.run(_main())


@app.command()
def ingest(
    rag_dir: Path = typer.Option(Path("rag"), "--rag-dir", help="Directory with policies/ and precedents/"),
    reindex: bool = typer.Option(False, "--reindex", help="Clear the knowledge base before ingesting"),
) -> None:
    """Chunk, embed and store the policy and precedent corpus."""

    settings = load_settings()
    configure_logging(settings.log_level)
    if not rag_dir.is_dir():
        raise typer.BadParameter(f"{rag_dir} is not a directory", param_hint="--rag-dir")
    context = build_app_context(settings)
    report = context.ingestor().ingest_dir(rag_dir, reindex=reindex)
    typer.echo(f"ingested={len(report.ingested)} unchanged={len(report.unchanged)} chunks={report.chunks}")


if __name__ == "__main__":
    app()
