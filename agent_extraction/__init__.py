"""
Agent Extraction — queue-driven document pipeline.

  preparation  → rasterize + OCR a PDF/TIFF, persist artifacts, publish
  extraction   → consume correlation IDs, forward to parsing
  parsing      → consume correlation IDs, pipeline ends

The correlation ID is the only payload on the wire; every artifact is
recovered from the artifact store by name.
"""

__version__ = "0.1.0"
