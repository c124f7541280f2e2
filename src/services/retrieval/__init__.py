"""Query-time retrieval over fragments and their generated questions."""

from src.services.retrieval.retrieval_engine import RetrievalEngine

__all__ = ["RetrievalEngine"]
