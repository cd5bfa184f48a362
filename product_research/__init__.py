"""
Competitor Product Research.

Finds competitor listings for a catalog product, extracts structured
profiles from their pages with Claude, normalizes prices to the store
currency and summarizes the result, one re-entrant stage at a time.
"""

__version__ = "1.0.0"
__author__ = "Competitor Research Team"

__all__ = ["__version__"]
