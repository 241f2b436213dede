"""
Pipeline Error Taxonomy

  InputValidationError   bad CLI argument / unsupported extension
                         → fatal to the invocation, nothing written
  External-resource      missing input, unreadable document, storage I/O,
  errors                 broker connect/publish failures
                         → fatal to the current operation, re-raised
  Handler errors         anything raised inside a consumer callback
                         → caught by the message bus, message requeued

Every class carries an optional correlation_id so log lines and the CLI
can tie a failure back to the document that caused it.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""

    def __init__(self, message: str, *, correlation_id: str | None = None) -> None:
        self.message = message
        self.correlation_id = correlation_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.correlation_id:
            return f"{self.message} (correlation_id={self.correlation_id})"
        return self.message


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class InputValidationError(PipelineError):
    pass


class UnsupportedFileTypeError(InputValidationError, ValueError):
    def __init__(self, extension: str, supported: frozenset[str] | set[str]) -> None:
        self.extension = extension
        self.supported = frozenset(supported)
        allowed = ", ".join(sorted(self.supported))
        super().__init__(
            f"Unsupported file extension: '{extension}'. Supported: {allowed}"
        )


# ---------------------------------------------------------------------------
# Document handling
# ---------------------------------------------------------------------------

class DocumentNotFoundError(PipelineError, FileNotFoundError):
    pass


class RasterizationError(PipelineError):
    pass


class EmptyDocumentError(RasterizationError):
    """The document rasterized to zero pages."""


class OcrError(PipelineError):
    pass


# ---------------------------------------------------------------------------
# Storage + messaging
# ---------------------------------------------------------------------------

class ArtifactStoreError(PipelineError):
    pass


class MessageBusError(PipelineError):
    pass


class BrokerInitializationError(MessageBusError):
    """Connection or channel could not be established. Never retried internally."""


class MessageDeliveryError(MessageBusError):
    pass


def describe_exception(exc: BaseException) -> str:
    """
    Human-readable message for the CLI: the outer error followed by each
    inner cause, one per line.
    """
    lines = [str(exc) or type(exc).__name__]
    seen = {id(exc)}
    inner = exc.__cause__ or exc.__context__
    while inner is not None and id(inner) not in seen:
        seen.add(id(inner))
        lines.append(f"Inner exception: {type(inner).__name__}: {inner}")
        inner = inner.__cause__ or inner.__context__
    return "\n".join(lines)
