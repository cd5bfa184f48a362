"""Entry points exposed to the client driver."""

from product_research.handlers.research_handler import ResearchHandler

__all__ = ["ResearchHandler"]
