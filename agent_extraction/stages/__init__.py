from agent_extraction.stages.base import ConsumerStage, NoOpStrategy, StageStrategy
from agent_extraction.stages.extraction import ExtractionService
from agent_extraction.stages.parsing import ParsingService
from agent_extraction.stages.preparation import SUPPORTED_EXTENSIONS, PreparationResult, PreparationService

__all__ = [
    "ConsumerStage",
    "ExtractionService",
    "NoOpStrategy",
    "ParsingService",
    "PreparationResult",
    "PreparationService",
    "StageStrategy",
    "SUPPORTED_EXTENSIONS",
]
