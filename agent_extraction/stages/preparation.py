"""
Preparation Stage

The pipeline's only directly-invoked entry point. One call handles one
document, strictly in this order:

  1. Validate the extension (pdf | tiff) — nothing is written on failure
  2. Generate a fresh correlation ID (UUID4)
  3. Persist the original bytes        {cid}_preparation_original.{ext}
  4. Rasterize into page images
  5. Persist each page as PNG          {cid}_preparation_{n}.png
  6. OCR each page, in page order
  7. Persist the OCR result            {cid}_preparation_ocr.json
  8. Publish the correlation ID to the extraction queue, exactly once
  9. Release the page images (on the failure path too)

Any failure after step 2 is logged with the correlation ID and re-raised.
Artifacts already written by then stay where they are.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from agent_extraction.core.errors import DocumentNotFoundError, EmptyDocumentError, PipelineError, UnsupportedFileTypeError
from agent_extraction.messaging.base import MessageBusService
from agent_extraction.observability.tracing import traced
from agent_extraction.processing.models import OcrPage, OcrResult
from agent_extraction.processing.ocr import BaseOcrEngine
from agent_extraction.processing.rasterizer import BaseRasterizer
from agent_extraction.storage import artifacts
from agent_extraction.storage.base import ArtifactStore

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({"pdf", "tiff"})


def normalize_extension(extension: str) -> str:
    """Lowercase and strip the leading dot: '.PDF' -> 'pdf'."""
    return extension.strip().lower().lstrip(".")


def validate_extension(extension: str) -> str:
    ext = normalize_extension(extension)
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFileTypeError(ext, SUPPORTED_EXTENSIONS)
    return ext


def _new_correlation_id() -> str:
    return str(uuid.uuid4())


@dataclass
class PreparationResult:
    """Names of everything one successful preparation run wrote."""
    correlation_id:  str
    original_name:   str
    page_names:      list[str] = field(default_factory=list)
    ocr_result_name: str = ""
    ocr_result:      OcrResult | None = None

    @property
    def page_count(self) -> int:
        return len(self.page_names)


class PreparationService:

    stage_name = artifacts.PREPARATION

    def __init__(
        self,
        bus: MessageBusService,
        storage: ArtifactStore,
        extraction_queue: str,
        *,
        rasterizer: BaseRasterizer,
        ocr_engine: BaseOcrEngine,
        id_factory: Callable[[], str] = _new_correlation_id,
    ) -> None:
        self._bus              = bus
        self._storage          = storage
        self._extraction_queue = extraction_queue
        self._rasterizer       = rasterizer
        self._ocr              = ocr_engine
        self._id_factory       = id_factory

    @traced("preparation.process_document")
    async def process_document(self, file_path: str | Path, extension: str | None = None) -> PreparationResult:
        path = Path(file_path)
        ext  = validate_extension(path.suffix if extension is None else extension)

        correlation_id = self._id_factory()
        t0 = time.monotonic()
        logger.info(
            "Preparation started | correlation_id=%s file=%s format=%s",
            correlation_id, path.name, ext,
        )

        images: list[Image.Image] = []
        try:
            original_name = artifacts.original_document_name(correlation_id, ext)
            await self._storage.save(original_name, await self._read_original(path))

            images = await self._rasterizer.rasterize(path, ext)
            page_names = await self._store_pages(correlation_id, images)

            ocr_result = await self._recognize_pages(correlation_id, images)
            ocr_name = artifacts.ocr_result_name(correlation_id)
            await self._storage.save(ocr_name, ocr_result.to_json_bytes())

            await self._bus.publish(self._extraction_queue, correlation_id)
        except Exception as exc:
            if isinstance(exc, PipelineError) and exc.correlation_id is None:
                exc.correlation_id = correlation_id
            logger.exception(
                "Preparation failed | correlation_id=%s file=%s",
                correlation_id, path.name,
            )
            raise
        finally:
            for img in images:
                img.close()

        logger.info(
            "Preparation completed | correlation_id=%s pages=%d ocr_pages=%d elapsed_ms=%.0f",
            correlation_id, len(page_names), len(ocr_result.pages), (time.monotonic() - t0) * 1000,
        )
        return PreparationResult(
            correlation_id=correlation_id,
            original_name=original_name,
            page_names=page_names,
            ocr_result_name=ocr_name,
            ocr_result=ocr_result,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _read_original(self, path: Path) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, path.read_bytes)
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(f"File not found at path: {path}") from exc

    async def _store_pages(self, correlation_id: str, images: list[Image.Image]) -> list[str]:
        if not images:
            raise EmptyDocumentError("No page images to store")

        loop = asyncio.get_running_loop()
        names: list[str] = []
        for page_number, img in enumerate(images, start=1):
            png = await loop.run_in_executor(None, _encode_png, img)
            name = artifacts.page_image_name(correlation_id, page_number)
            await self._storage.save(name, png)
            names.append(name)
        return names

    async def _recognize_pages(self, correlation_id: str, images: list[Image.Image]) -> OcrResult:
        pages: list[OcrPage] = []
        for page_number, img in enumerate(images, start=1):
            blocks = await self._ocr.recognize(img)
            kept = [
                b.model_copy(update={"text": b.text.strip()})
                for b in blocks
                if b.text.strip()
            ]
            if not kept:
                logger.debug("Blank page dropped | correlation_id=%s page=%d", correlation_id, page_number)
                continue
            pages.append(OcrPage(page_number=page_number, blocks=kept))
        return OcrResult(pages=pages)


def _encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
