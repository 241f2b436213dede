"""
Artifact naming convention.

Every artifact a stage writes is named

    {correlation_id}_{stage}_{qualifier}

so any downstream stage can rebuild the name from the correlation ID
alone. The preparation stage writes:

    {cid}_preparation_original.{ext}     unmodified input document
                                         (.tif input is stored as .tiff)
    {cid}_preparation_{n}.png            page image, n starts at 1
    {cid}_preparation_ocr.json           OCR result document

These patterns are an interoperability contract — do not change them
without changing every consumer.
"""

from __future__ import annotations

PREPARATION = "preparation"
EXTRACTION  = "extraction"
PARSING     = "parsing"

PAGE_IMAGE_FORMAT = "png"
OCR_RESULT_QUALIFIER = "ocr.json"


def artifact_name(correlation_id: str, stage: str, qualifier: str) -> str:
    if not stage or not qualifier:
        raise ValueError("stage and qualifier must be non-empty")
    return f"{correlation_id}_{stage}_{qualifier}"


def original_document_name(correlation_id: str, extension: str) -> str:
    ext = extension.lower().lstrip(".")
    if not ext:
        raise ValueError("extension must be non-empty")
    return artifact_name(correlation_id, PREPARATION, f"original.{ext}")


def page_image_name(correlation_id: str, page_number: int) -> str:
    if page_number < 1:
        raise ValueError(f"page numbers are 1-based, got {page_number}")
    return artifact_name(correlation_id, PREPARATION, f"{page_number}.{PAGE_IMAGE_FORMAT}")


def ocr_result_name(correlation_id: str) -> str:
    return artifact_name(correlation_id, PREPARATION, OCR_RESULT_QUALIFIER)
