"""
Deterministic cleanup of extracted page text before it is sent to the LLM.

The pipeline is fixed:

    1. Drop ``<script>``, ``<style>``, navigation chrome, forms and comments
    2. Strip the remaining tags
    3. Keep a window of lines around product-relevant keywords
    4. Collapse whitespace
    5. Truncate to the token budget (~4 characters per token)
"""

import math
import re

from product_research.utils.logger import get_logger

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_TOKEN_BUDGET = 4000
CONTEXT_LINES = 3

PRODUCT_KEYWORDS = (
    "price", "cost", "$", "€", "£", "¥",
    "add to cart", "buy now", "in stock", "out of stock",
    "size", "color", "colour", "material", "weight",
    "variation", "option", "select",
    "description", "features", "specifications", "specs",
    "shipping", "delivery", "free shipping",
    "rating", "review", "stars",
    "availability", "pre-order", "sku", "model", "brand",
)

_BLOCK_PATTERNS = [
    re.compile(r"<script\b[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<style\b[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<(nav|header|footer|aside)\b[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<form\b[^>]*>.*?</form>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<!--.*?-->", re.DOTALL),
]
_TAG_PATTERN = re.compile(r"<[^>]+>")
_BLANK_LINES = re.compile(r"\n{3,}")
_SPACES = re.compile(r"[ \t]+")


class ContentSanitizer:
    """Reduces raw page content to the text that matters for pricing."""

    def __init__(self, token_budget: int = DEFAULT_TOKEN_BUDGET):
        self.token_budget = token_budget

    def sanitize(self, content: str) -> str:
        text = self.strip_markup(content or "")
        text = self.extract_relevant_sections(text)
        text = self.normalize_whitespace(text)
        return self.truncate_to_budget(text)

    @staticmethod
    def strip_markup(content: str) -> str:
        for pattern in _BLOCK_PATTERNS:
            content = pattern.sub("", content)
        return _TAG_PATTERN.sub("", content)

    @staticmethod
    def extract_relevant_sections(text: str) -> str:
        """
        Keep lines within ``CONTEXT_LINES`` of a keyword match.

        If nothing matches, the full text is returned unchanged.
        """
        lines = text.split("\n")
        keep: set[int] = set()
        for i, line in enumerate(lines):
            lowered = line.lower()
            if any(keyword in lowered for keyword in PRODUCT_KEYWORDS):
                start = max(0, i - CONTEXT_LINES)
                end = min(len(lines), i + CONTEXT_LINES + 1)
                keep.update(range(start, end))

        if not keep:
            return text
        return "\n".join(lines[i] for i in sorted(keep))

    @staticmethod
    def normalize_whitespace(text: str) -> str:
        text = _BLANK_LINES.sub("\n\n", text)
        text = _SPACES.sub(" ", text)
        return text.strip()

    def truncate_to_budget(self, text: str) -> str:
        max_chars = self.token_budget * CHARS_PER_TOKEN
        if len(text) <= max_chars:
            return text
        logger.debug("Content truncated", original_chars=len(text), max_chars=max_chars)
        return text[:max_chars]

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return math.ceil(len(text) / CHARS_PER_TOKEN)
