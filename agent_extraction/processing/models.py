"""
OCR Result — Pydantic Models

Serialized to {cid}_preparation_ocr.json and read back by any later stage:

    {
      "pages": [
        {
          "pageNumber": 1,
          "blocks": [
            {"text": "...", "x": 0, "y": 0, "width": 0, "height": 0, "confidence": 91.5}
          ]
        }
      ]
    }

Design decisions:
  - Field names on the wire are camelCase; Python attributes are snake_case.
  - Output is indented and null fields are omitted.
  - confidence is passed through from the engine (0–100), never clamped.
  - A page with zero blocks is never emitted; pages keep their original
    1-based number, so numbering can have gaps.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OcrBlock(BaseModel):
    """One recognized text region, in page-image pixel coordinates."""
    text:       str
    x:          int
    y:          int
    width:      int   = Field(..., ge=0)
    height:     int   = Field(..., ge=0)
    confidence: float | None = None


class OcrPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_number: int            = Field(..., ge=1, alias="pageNumber")
    blocks:      list[OcrBlock] = Field(default_factory=list)


class OcrResult(BaseModel):
    pages: list[OcrPage] = Field(default_factory=list)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2).encode("utf-8")

    @classmethod
    def from_json_bytes(cls, data: bytes) -> "OcrResult":
        return cls.model_validate_json(data)

    @property
    def page_numbers(self) -> list[int]:
        return [p.page_number for p in self.pages]
