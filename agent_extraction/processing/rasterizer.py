"""
Document rasterization — PDF and TIFF to in-memory page images.

  PDF   PyMuPDF renders each page straight to a pixmap scaled to the
        target raster size (default 794x1123, A4 at 96 DPI).
  TIFF  Pillow iterates the frames; each frame keeps its native size.

Page order is preserved. The caller owns the returned images and must
close() them once they are persisted and OCR'd.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

import fitz  # PyMuPDF
from PIL import Image, ImageSequence, UnidentifiedImageError

from agent_extraction.core.errors import DocumentNotFoundError, EmptyDocumentError, RasterizationError

logger = logging.getLogger(__name__)

DEFAULT_PDF_WIDTH  = 794
DEFAULT_PDF_HEIGHT = 1123


class BaseRasterizer(ABC):

    @abstractmethod
    async def rasterize(self, path: str | Path, extension: str) -> list[Image.Image]:
        """
        Render every page of the document at path to an image, in order.

        Raises DocumentNotFoundError, RasterizationError, or
        EmptyDocumentError when the document has no pages.
        """


class DocumentRasterizer(BaseRasterizer):

    def __init__(self, pdf_width: int = DEFAULT_PDF_WIDTH, pdf_height: int = DEFAULT_PDF_HEIGHT) -> None:
        if pdf_width <= 0 or pdf_height <= 0:
            raise ValueError("raster size must be positive")
        self._pdf_width  = pdf_width
        self._pdf_height = pdf_height

    async def rasterize(self, path: str | Path, extension: str) -> list[Image.Image]:
        path = Path(path)
        ext  = extension.lower().lstrip(".")

        if ext == "pdf":
            render = self._render_pdf_sync
        elif ext == "tiff":
            render = self._render_tiff_sync
        else:
            raise RasterizationError(f"Cannot rasterize extension '{ext}'")

        if not path.is_file():
            raise DocumentNotFoundError(f"File not found at path: {path}")

        loop = asyncio.get_running_loop()
        t0 = time.monotonic()
        try:
            images = await loop.run_in_executor(None, render, path)
        except (RasterizationError, DocumentNotFoundError):
            raise
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(f"File not found at path: {path}") from exc
        except Exception as exc:
            raise RasterizationError(f"Failed to rasterize {path.name}") from exc

        if not images:
            raise EmptyDocumentError(f"Document has no pages: {path.name}")

        logger.info(
            "Rasterized | file=%s format=%s pages=%d elapsed_ms=%.0f",
            path.name, ext, len(images), (time.monotonic() - t0) * 1000,
        )
        return images

    # ------------------------------------------------------------------
    # Blocking renderers (default executor)
    # ------------------------------------------------------------------

    def _render_pdf_sync(self, path: Path) -> list[Image.Image]:
        images: list[Image.Image] = []
        try:
            with fitz.open(str(path)) as doc:
                for page in doc:
                    rect = page.rect
                    matrix = fitz.Matrix(self._pdf_width / rect.width, self._pdf_height / rect.height)
                    pix = page.get_pixmap(matrix=matrix, alpha=False)
                    img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
                    # Rounding in the matrix can leave the pixmap a pixel off target.
                    if img.size != (self._pdf_width, self._pdf_height):
                        resized = img.resize((self._pdf_width, self._pdf_height))
                        img.close()
                        img = resized
                    images.append(img)
        except BaseException:
            for img in images:
                img.close()
            raise
        return images

    @staticmethod
    def _render_tiff_sync(path: Path) -> list[Image.Image]:
        images: list[Image.Image] = []
        try:
            with Image.open(path) as tiff:
                for frame in ImageSequence.Iterator(tiff):
                    images.append(frame.convert("RGB"))
        except UnidentifiedImageError as exc:
            for img in images:
                img.close()
            raise RasterizationError(f"Not a readable TIFF: {path.name}") from exc
        except BaseException:
            for img in images:
                img.close()
            raise
        return images
