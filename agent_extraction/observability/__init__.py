from agent_extraction.observability.tracing import configure_tracing, traced

__all__ = ["configure_tracing", "traced"]
