"""
Product copy generation.

Turns a finalized competitor analysis into listing copy for the researched
subject: an SEO title, a short and a full description, keywords and the
competitive advantages the analysis supports. The full description comes
back as HTML and is reduced to a small tag whitelist before it is returned.

Example:
    >>> copywriter = ProductCopywriter(ClaudeExtractionService(settings))
    >>> copy = await copywriter.write_copy(subject, report.analysis_result, "casual")
"""

import json
import re

from product_research.extractors.prompts import format_product_copy_prompt
from product_research.models.schemas import CompetitorReport, CopywriterOutput, Subject
from product_research.services.llm_service import StructuredExtractionService
from product_research.services.validation_service import ValidationError
from product_research.utils.logger import get_logger

logger = get_logger(__name__)

COPY_TONES = ("professional", "casual", "luxury", "discount")
DEFAULT_TONE = "professional"
ALLOWED_HTML_TAGS = frozenset({"p", "ul", "ol", "li", "strong", "em", "br"})

_DROPPED_BLOCKS = re.compile(r"<(script|style|iframe)\b[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9]*)\b[^>]*?(/?)>")


def clean_description_html(html: str) -> str:
    """
    Keep only whitelisted tags, without attributes.

    Script, style and iframe blocks are removed with their content; any other
    tag is removed and its text kept.
    """
    html = _DROPPED_BLOCKS.sub("", html)

    def _keep(match: re.Match) -> str:
        closing, name, _ = match.groups()
        name = name.lower()
        if name not in ALLOWED_HTML_TAGS:
            return ""
        if name == "br":
            return "<br>"
        return f"<{closing}{name}>"

    return _TAG.sub(_keep, html).strip()


def analysis_payload(analysis: CompetitorReport) -> str:
    """Competitor analysis as indented JSON, without image lists."""
    data = analysis.model_dump(
        mode="json",
        exclude={"competitors": {"__all__": {"images"}}},
    )
    return json.dumps(data, indent=2, ensure_ascii=False)


class ProductCopywriter:
    """Writes listing copy through the structured extraction service."""

    def __init__(self, service: StructuredExtractionService):
        self.service = service

    @staticmethod
    def validate_tone(tone: str) -> str:
        """
        Raises:
            ValidationError: If ``tone`` is not one of ``COPY_TONES``
        """
        normalized = (tone or DEFAULT_TONE).strip().lower()
        if normalized not in COPY_TONES:
            raise ValidationError(
                code="INVALID_TONE",
                message=f"Unknown tone {tone!r}; choose one of {', '.join(COPY_TONES)}",
                details={"tone": tone},
            )
        return normalized

    async def write_copy(
        self,
        subject: Subject,
        analysis: CompetitorReport,
        tone: str = DEFAULT_TONE,
    ) -> CopywriterOutput:
        """
        Generate copy for ``subject`` from its competitor analysis.

        Raises:
            ValidationError: Unknown tone
            ExtractionFailedError: Service failure or schema retries exhausted
        """
        tone = self.validate_tone(tone)
        output = await self.service.extract(
            analysis_payload(analysis),
            CopywriterOutput,
            format_product_copy_prompt(subject, tone),
        )
        cleaned = clean_description_html(output.full_description)
        if cleaned != output.full_description:
            logger.info("Removed disallowed markup from product copy", subject_id=subject.id)
        return output.model_copy(update={"full_description": cleaned})
