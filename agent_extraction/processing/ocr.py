"""
OCR Engine — Tesseract at block granularity
═══════════════════════════════════════════

pytesseract.image_to_data returns one row per layout element, tagged
with a level:

  1 page   2 block   3 paragraph   4 line   5 word

The engine keeps level-2 rows for the block bounding box and folds the
level-5 word rows back into their block: words on the same line are
joined with spaces, lines with newlines. Block confidence is the mean of
the word confidences (Tesseract reports -1 for rows without a score;
those are ignored).

Blocks come back in Tesseract's reading order. Filtering blank blocks is
the caller's job; the engine only returns what Tesseract saw.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

import pytesseract
from PIL import Image

from agent_extraction.core.errors import OcrError
from agent_extraction.processing.models import OcrBlock

logger = logging.getLogger(__name__)

BLOCK_LEVEL = 2
WORD_LEVEL  = 5


class BaseOcrEngine(ABC):

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Unique name for logging."""

    @abstractmethod
    async def recognize(self, image: Image.Image) -> list[OcrBlock]:
        """Return the text blocks found on one page image, in reading order."""


def blocks_from_tesseract_data(data: Mapping[str, Sequence[Any]]) -> list[OcrBlock]:
    """Fold an image_to_data DICT into one OcrBlock per Tesseract block."""
    levels = data.get("level", [])

    bboxes: dict[int, tuple[int, int, int, int]] = {}
    lines:  dict[int, dict[tuple[int, int], list[str]]] = {}
    confs:  dict[int, list[float]] = {}
    order:  list[int] = []

    for i, level in enumerate(levels):
        level = int(level)
        block = int(data["block_num"][i])

        if level == BLOCK_LEVEL:
            bboxes[block] = (
                int(data["left"][i]),
                int(data["top"][i]),
                int(data["width"][i]),
                int(data["height"][i]),
            )
            if block not in lines:
                lines[block] = {}
                order.append(block)
            continue

        if level != WORD_LEVEL:
            continue

        word = str(data["text"][i] or "").strip()
        if not word:
            continue

        if block not in lines:
            lines[block] = {}
            order.append(block)
        key = (int(data["par_num"][i]), int(data["line_num"][i]))
        lines[block].setdefault(key, []).append(word)

        conf = float(data["conf"][i])
        if conf >= 0:
            confs.setdefault(block, []).append(conf)

    blocks: list[OcrBlock] = []
    for block in order:
        text = "\n".join(" ".join(words) for words in lines[block].values())
        if not text:
            continue
        x, y, w, h = bboxes.get(block, (0, 0, 0, 0))
        scores = confs.get(block)
        blocks.append(OcrBlock(
            text=text,
            x=x, y=y, width=w, height=h,
            confidence=sum(scores) / len(scores) if scores else None,
        ))
    return blocks


class TesseractOcrEngine(BaseOcrEngine):
    """
    Local Tesseract via pytesseract. Requires the tesseract binary and the
    language data for `language` on the host.
    """

    def __init__(
        self,
        language: str = "eng",
        tesseract_cmd: str | None = None,
        tessdata_dir: str | None = None,
    ) -> None:
        self._language = language
        self._config   = f'--tessdata-dir "{tessdata_dir}"' if tessdata_dir else ""
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @property
    def engine_name(self) -> str:
        return "tesseract"

    async def recognize(self, image: Image.Image) -> list[OcrBlock]:
        loop = asyncio.get_running_loop()
        t0 = time.monotonic()
        try:
            data = await loop.run_in_executor(None, self._image_to_data_sync, image)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as exc:
            logger.error("Tesseract failed | language=%s error=%s", self._language, exc)
            raise OcrError(f"Tesseract failed: {exc}") from exc

        blocks = blocks_from_tesseract_data(data)
        logger.debug(
            "OCR page | engine=%s blocks=%d elapsed_ms=%.0f",
            self.engine_name, len(blocks), (time.monotonic() - t0) * 1000,
        )
        return blocks

    def _image_to_data_sync(self, image: Image.Image) -> dict[str, list[Any]]:
        return pytesseract.image_to_data(
            image,
            lang=self._language,
            config=self._config,
            output_type=pytesseract.Output.DICT,
        )
