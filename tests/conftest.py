"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : memory_store, mock_bus, make_rasterizer, make_ocr_engine,
                    sample_pdf_path, sample_tiff_path, unique_queues

Environment strategy:
  - Broker defaults to kombu's in-process memory:// transport — no RabbitMQ.
  - Artifacts go to an in-memory store; filesystem tests use tmp_path.
  - OCR is scripted per page; Tesseract is never invoked outside the
    tests that patch pytesseract directly.
  - Sample PDFs / TIFFs are generated on the fly with PyMuPDF / Pillow.

How to run:
  pytest                              # all tests
  pytest -m unit                      # unit tests only (fast, no broker)
  pytest -m integration               # in-process pipeline over memory://
  pytest tests/unit/test_preparation.py
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any package imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("BROKER_URL",            "memory://")
os.environ.setdefault("BROKER_DRAIN_TIMEOUT",  "0.05")
os.environ.setdefault("STORAGE_BACKEND",       "filesystem")
os.environ.setdefault("AWS_REGION",            "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID",     "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("S3_BUCKET",             "test-bucket")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("DEBUG",                 "true")

import fitz  # noqa: E402
from PIL import Image  # noqa: E402

from agent_extraction.messaging.base import MessageBusService  # noqa: E402
from agent_extraction.processing.models import OcrBlock  # noqa: E402
from agent_extraction.processing.ocr import BaseOcrEngine  # noqa: E402
from agent_extraction.processing.rasterizer import BaseRasterizer  # noqa: E402
from agent_extraction.storage.base import ArtifactStore  # noqa: E402


# ─────────────────────────────────────────────────────────────────────────────
# Test doubles
# ─────────────────────────────────────────────────────────────────────────────

class InMemoryArtifactStore(ArtifactStore):
    """Dict-backed store; records every save in order."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.saved: list[str] = []

    @property
    def backend_name(self) -> str:
        return "memory"

    async def save(self, name: str, data: bytes) -> None:
        self.blobs[name] = bytes(data)
        self.saved.append(name)

    async def read(self, name: str) -> bytes | None:
        return self.blobs.get(name)


class FakeRasterizer(BaseRasterizer):
    """Returns `pages` blank images; every image's close() is spied."""

    def __init__(self, pages: int = 1, size: tuple[int, int] = (64, 48)) -> None:
        self._pages = pages
        self._size = size
        self.images: list[Image.Image] = []
        self.calls: list[tuple[Path, str]] = []

    async def rasterize(self, path, extension):
        self.calls.append((Path(path), extension))
        self.images = []
        for _ in range(self._pages):
            img = Image.new("RGB", self._size, "white")
            img.close = MagicMock(wraps=img.close)
            self.images.append(img)
        return list(self.images)


class FakeOcrEngine(BaseOcrEngine):
    """
    Scripted OCR: pages[i] is the text of page i+1. A string yields one
    block; a list yields one block per entry.
    """

    def __init__(self, pages: list[str | list[str]]) -> None:
        self._pages = list(pages)
        self.calls = 0

    @property
    def engine_name(self) -> str:
        return "fake"

    async def recognize(self, image):
        texts = self._pages[self.calls]
        self.calls += 1
        if isinstance(texts, str):
            texts = [texts]
        return [
            OcrBlock(text=t, x=10, y=20 * i, width=100, height=18, confidence=90.0)
            for i, t in enumerate(texts)
        ]


# ─────────────────────────────────────────────────────────────────────────────
# Storage + bus
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def memory_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def mock_bus() -> MagicMock:
    """MessageBusService with AsyncMock publish / consume — no broker."""
    bus = MagicMock(spec=MessageBusService)
    bus.publish = AsyncMock(return_value=None)
    bus.consume = AsyncMock(return_value=None)
    return bus


@pytest.fixture
def unique_queues() -> tuple[str, str]:
    """
    memory:// queues live in a process-wide dict, so every test that
    touches the transport gets its own queue names.
    """
    suffix = uuid.uuid4().hex[:8]
    return f"extraction_queue_{suffix}", f"parsing_queue_{suffix}"


# ─────────────────────────────────────────────────────────────────────────────
# Rasterizer + OCR
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_rasterizer():
    def _build(pages: int = 1, size: tuple[int, int] = (64, 48)) -> FakeRasterizer:
        return FakeRasterizer(pages=pages, size=size)
    return _build


@pytest.fixture
def make_ocr_engine():
    def _build(pages: list[str | list[str]]) -> FakeOcrEngine:
        return FakeOcrEngine(pages)
    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Sample documents
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_pdf(tmp_path):
    """Factory: write an A4 PDF with one text line per page."""
    def _build(texts: list[str], name: str = "sample.pdf") -> Path:
        path = tmp_path / name
        doc = fitz.open()
        for text in texts:
            page = doc.new_page(width=595, height=842)
            if text:
                page.insert_text((72, 72), text)
        doc.save(str(path))
        doc.close()
        return path
    return _build


@pytest.fixture
def sample_pdf_path(make_pdf) -> Path:
    """Two pages: 'Invoice #123' and a blank page."""
    return make_pdf(["Invoice #123", ""])


@pytest.fixture
def make_tiff(tmp_path):
    """Factory: write a multi-frame TIFF, one solid-colour frame per entry."""
    def _build(colours: list[str], size: tuple[int, int] = (120, 80), name: str = "sample.tiff") -> Path:
        path = tmp_path / name
        frames = [Image.new("RGB", size, c) for c in colours]
        frames[0].save(str(path), format="TIFF", save_all=True, append_images=frames[1:])
        for f in frames:
            f.close()
        return path
    return _build


@pytest.fixture
def sample_tiff_path(make_tiff) -> Path:
    return make_tiff(["red", "green", "blue"])
