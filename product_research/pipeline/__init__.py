"""Pipeline module: report state machine, stages, guard and workflow."""

from product_research.pipeline.state import (
    ALLOWED_TRANSITIONS,
    OutcomeKind,
    StageOutcome,
    can_transition,
    ensure_transition,
)
from product_research.pipeline.analysis import PartialAnalysis, StepResult, analyze_step
from product_research.pipeline.orchestrator import (
    AnalyzeStageResult,
    ExtractStageResult,
    ResearchOrchestrator,
    SearchStageResult,
    build_search_query,
)
from product_research.pipeline.guard import Admission, ResearchGuard


__all__ = [
    "ALLOWED_TRANSITIONS",
    "OutcomeKind",
    "StageOutcome",
    "can_transition",
    "ensure_transition",
    "PartialAnalysis",
    "StepResult",
    "analyze_step",
    "ResearchOrchestrator",
    "SearchStageResult",
    "ExtractStageResult",
    "AnalyzeStageResult",
    "build_search_query",
    "Admission",
    "ResearchGuard",
]
