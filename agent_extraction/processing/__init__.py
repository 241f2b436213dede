from agent_extraction.processing.models import OcrBlock, OcrPage, OcrResult
from agent_extraction.processing.ocr import BaseOcrEngine, TesseractOcrEngine
from agent_extraction.processing.rasterizer import BaseRasterizer, DocumentRasterizer

__all__ = [
    "BaseOcrEngine",
    "BaseRasterizer",
    "DocumentRasterizer",
    "OcrBlock",
    "OcrPage",
    "OcrResult",
    "TesseractOcrEngine",
]
