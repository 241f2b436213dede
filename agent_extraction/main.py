"""
Command-line entry point

    agent-extraction <file_path> [--no-wait]

Startup sequence:
  1. Validate the argument (present, exists, .pdf / .tiff / .tif)
  2. Connect to the broker and declare both pipeline queues
  3. Subscribe the extraction stage, then the parsing stage
  4. Run preparation for the file, which publishes to the extraction queue
  5. Keep consuming until SIGINT / SIGTERM or until the bus is lost for
     good (skipped with --no-wait)
  6. Dispose the broker connection, whatever happened above

Validation failures print a message and exit 1 without touching the
broker. Pipeline failures print the error and its cause chain, then still
shut down cleanly.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from agent_extraction.core.config import Settings, settings
from agent_extraction.core.errors import describe_exception
from agent_extraction.messaging.base import MessageBusService, MessageBusServiceFactory
from agent_extraction.messaging.factory import RabbitMQServiceFactory
from agent_extraction.observability.tracing import configure_tracing
from agent_extraction.processing.ocr import BaseOcrEngine, TesseractOcrEngine
from agent_extraction.processing.rasterizer import BaseRasterizer, DocumentRasterizer
from agent_extraction.stages.extraction import ExtractionService
from agent_extraction.stages.parsing import ParsingService
from agent_extraction.stages.preparation import PreparationResult, PreparationService
from agent_extraction.storage.base import ArtifactStore
from agent_extraction.storage.factory import create_artifact_store

logger = logging.getLogger(__name__)

CLI_EXTENSIONS = {".pdf": "pdf", ".tiff": "tiff", ".tif": "tiff"}


def configure_logging(cfg: Settings = settings) -> None:
    logging.basicConfig(
        level=cfg.effective_log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-extraction",
        description="Run a PDF or TIFF document through the preparation → extraction → parsing pipeline.",
    )
    parser.add_argument("file_path", nargs="?", help="Path to a .pdf, .tiff or .tif document")
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Shut down right after the document is submitted instead of consuming until interrupted",
    )
    return parser


def validate_input(file_path: str | None) -> Path | None:
    """Print the reason and return None if the argument is unusable."""
    if not file_path:
        print("Error: No file path provided.")
        print("Usage: agent-extraction <file_path>")
        return None

    path = Path(file_path)
    if not path.is_file():
        print(f"Error: File not found at path: {file_path}")
        return None

    if path.suffix.lower() not in CLI_EXTENSIONS:
        print("Error: Unsupported file format. Only PDF and TIFF formats are supported.")
        return None

    return path


async def _wait_for_shutdown(bus: MessageBusService) -> None:
    """Block until SIGINT / SIGTERM, or until the bus stops consuming."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; Ctrl+C still raises.
            pass
    print("Consuming. Press Ctrl+C to exit...")

    stopped = asyncio.ensure_future(stop.wait())
    closed = asyncio.ensure_future(bus.wait_closed())
    try:
        done, _ = await asyncio.wait({stopped, closed}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (stopped, closed):
            task.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)

    if closed in done:
        # Re-raises the broker failure when consuming stopped for good.
        closed.result()
        logger.info("Message bus closed, shutting down")


async def run_pipeline(
    path: Path,
    *,
    cfg: Settings = settings,
    wait: bool = True,
    factory: MessageBusServiceFactory | None = None,
    storage: ArtifactStore | None = None,
    rasterizer: BaseRasterizer | None = None,
    ocr_engine: BaseOcrEngine | None = None,
) -> PreparationResult | None:
    """Wire every stage and push one document through. Returns None on failure."""
    factory = factory or RabbitMQServiceFactory.from_settings(cfg)
    try:
        bus = await factory.create(cfg.broker_url)
        print("Message bus service initialized successfully.")

        storage = storage or create_artifact_store(cfg)
        extraction = ExtractionService(bus, cfg.extraction_queue, cfg.parsing_queue, storage)
        parsing = ParsingService(bus, cfg.parsing_queue, storage)

        print("Setting up extraction service subscription...")
        await extraction.subscribe()
        print("Setting up parsing service subscription...")
        await parsing.subscribe()

        print("Initializing preparation service...")
        preparation = PreparationService(
            bus,
            storage,
            cfg.extraction_queue,
            rasterizer=rasterizer or DocumentRasterizer(cfg.pdf_raster_width, cfg.pdf_raster_height),
            ocr_engine=ocr_engine or TesseractOcrEngine(
                language=cfg.ocr_language,
                tesseract_cmd=cfg.tesseract_cmd or None,
                tessdata_dir=cfg.tessdata_dir or None,
            ),
        )

        print(f"Processing document: {path}")
        result = await preparation.process_document(path, CLI_EXTENSIONS[path.suffix.lower()])
        print("Document submitted to the processing pipeline successfully.")
        print(f"Correlation ID: {result.correlation_id}")

        if wait:
            await _wait_for_shutdown(bus)
        return result
    except Exception as exc:
        logger.exception("Pipeline run failed | file=%s", path)
        print(f"Error during processing: {describe_exception(exc)}")
        return None
    finally:
        await factory.dispose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    path = validate_input(args.file_path)
    if path is None:
        return 1

    configure_logging(settings)
    configure_tracing(settings)
    logger.info(
        "Starting pipeline | env=%s broker=%s storage=%s",
        settings.app_env, settings.broker_url.split("@")[-1], settings.storage_backend,
    )

    try:
        result = asyncio.run(run_pipeline(path, cfg=settings, wait=not args.no_wait))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
    return 0 if result is not None else 1


if __name__ == "__main__":
    sys.exit(main())
