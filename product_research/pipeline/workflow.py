"""
Unattended research run built on a LangGraph StateGraph.

Chains the handler entry points for a single subject without an operator in
the loop: start, confirm the top-ranked URLs, analyze each page in turn and
finalize. Each node calls exactly one entry point, so a run that stops part
way leaves the report in a state the interactive commands can pick up.

Graph structure::

    start --(ok)--> confirm --(ok)--> analyze --(more pages)--> analyze
      |                |                 |
      +--(error)-------+--(error)--------+--(done)--> finalize --> END
      |
      +--(resuming)--> END

Guard rejections (cooldown, budget, unknown subject) are raised to the
caller rather than recorded as a failed run.
"""

import operator
import time
from functools import wraps
from typing import Annotated, Any, Callable, Literal, Optional, TypedDict

from langgraph.graph import END, StateGraph

from product_research.handlers.research_handler import ResearchHandler
from product_research.utils.errors import AppError, PreconditionError
from product_research.utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[str], None]


# =============================================================================
# Workflow State Definition (TypedDict for LangGraph)
# =============================================================================

class WorkflowState(TypedDict, total=False):
    """
    Workflow state passed between nodes.

    Uses Annotated with operator.add so every node can append errors.
    """
    # Input
    subject_id: str
    force_refresh: bool

    # Progress
    report_id: str
    urls: list[str]
    total_urls: int
    next_index: int
    analyzed: int
    skipped: int
    status: str

    # Output
    result: Optional[dict]
    errors: Annotated[list[str], operator.add]
    step_timings: dict


def track_timing(func: Callable):
    """Decorator to log node duration and accumulate it per node."""
    @wraps(func)
    async def wrapper(self, state: WorkflowState) -> dict[str, Any]:
        start_time = time.time()
        node_name = func.__name__.replace("_node", "").lstrip("_")

        logger.info(f"Starting node: {node_name}", report_id=state.get("report_id"))
        result = await func(self, state)
        duration_ms = int((time.time() - start_time) * 1000)

        step_timings = dict(state.get("step_timings") or {})
        step_timings[node_name] = step_timings.get(node_name, 0) + duration_ms
        result["step_timings"] = step_timings

        logger.info(
            f"Completed node: {node_name}",
            report_id=result.get("report_id", state.get("report_id")),
            duration_ms=duration_ms,
        )
        return result

    return wrapper


class ResearchWorkflow:
    """
    Drives one subject from start to a finished report.

    Example:
        >>> workflow = ResearchWorkflow(handler)
        >>> final_state = await workflow.run("42")
        >>> final_state["status"]
        'complete'
    """

    def __init__(
        self,
        handler: ResearchHandler,
        max_competitors: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.handler = handler
        self.max_competitors = max_competitors or handler.settings.max_competitors
        self.progress_callback = progress_callback
        self._graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(WorkflowState)

        graph.add_node("start", self._start_node)
        graph.add_node("confirm", self._confirm_node)
        graph.add_node("analyze", self._analyze_node)
        graph.add_node("finalize", self._finalize_node)

        graph.set_entry_point("start")

        graph.add_conditional_edges(
            "start",
            self._route_after_start,
            {"confirm": "confirm", "end": END},
        )
        graph.add_conditional_edges(
            "confirm",
            self._route_after_confirm,
            {"analyze": "analyze", "end": END},
        )
        graph.add_conditional_edges(
            "analyze",
            self._route_after_analyze,
            {"analyze": "analyze", "finalize": "finalize", "end": END},
        )
        graph.add_edge("finalize", END)

        return graph.compile()

    # =========================================================================
    # Routing
    # =========================================================================

    def _route_after_start(self, state: WorkflowState) -> Literal["confirm", "end"]:
        return "confirm" if state.get("status") == "previewing" else "end"

    def _route_after_confirm(self, state: WorkflowState) -> Literal["analyze", "end"]:
        return "analyze" if state.get("status") == "analyzing" else "end"

    def _route_after_analyze(self, state: WorkflowState) -> Literal["analyze", "finalize", "end"]:
        if state.get("status") == "failed":
            return "end"
        if state.get("next_index", 0) < state.get("total_urls", 0):
            return "analyze"
        return "finalize"

    # =========================================================================
    # Node Implementations
    # =========================================================================

    def _notify(self, message: str) -> None:
        if self.progress_callback:
            try:
                self.progress_callback(message)
            except Exception as cb_err:
                logger.warning(f"Progress callback failed: {cb_err}")

    @staticmethod
    def _failed(error: AppError) -> dict[str, Any]:
        return {"status": "failed", "errors": [error.message]}

    @track_timing
    async def _start_node(self, state: WorkflowState) -> dict[str, Any]:
        try:
            started = await self.handler.start_research(
                state["subject_id"], force_refresh=state.get("force_refresh", False)
            )
        except PreconditionError:
            raise
        except AppError as e:
            return self._failed(e)

        if started.resuming and not started.urls:
            self._notify(f"Report {started.report_id} is already in progress")
            return {"report_id": started.report_id, "status": "resuming"}

        urls = started.urls[: self.max_competitors]
        self._notify(f"Found {len(started.urls)} results, selecting {len(urls)}")
        return {"report_id": started.report_id, "urls": urls, "status": "previewing"}

    @track_timing
    async def _confirm_node(self, state: WorkflowState) -> dict[str, Any]:
        try:
            confirmed = await self.handler.confirm_urls(state["report_id"], state["urls"])
        except AppError as e:
            return self._failed(e)

        self._notify(f"Extracted {confirmed.total_urls} pages")
        return {
            "total_urls": confirmed.total_urls,
            "next_index": 0,
            "analyzed": 0,
            "skipped": 0,
            "status": "analyzing",
        }

    @track_timing
    async def _analyze_node(self, state: WorkflowState) -> dict[str, Any]:
        index = state.get("next_index", 0)
        try:
            response = await self.handler.analyze_url(state["report_id"], index)
        except AppError as e:
            return self._failed(e)

        update: dict[str, Any] = {"next_index": index + 1}
        if response.error:
            update["skipped"] = state.get("skipped", 0) + 1
            update["errors"] = [f"Page {index + 1}: {response.error}"]
        else:
            update["analyzed"] = state.get("analyzed", 0) + 1

        self._notify(f"Analyzed {response.progress.current} of {response.progress.total}")
        return update

    @track_timing
    async def _finalize_node(self, state: WorkflowState) -> dict[str, Any]:
        try:
            finalized = await self.handler.finalize_report(state["report_id"])
        except AppError as e:
            return self._failed(e)

        self._notify("Report complete")
        return {"status": "complete", "result": finalized.report.to_dict()}

    # =========================================================================
    # Execution
    # =========================================================================

    async def run(self, subject_id: str, force_refresh: bool = False) -> WorkflowState:
        """
        Run the whole pipeline for ``subject_id``.

        Returns:
            Final workflow state; ``status`` is ``complete``, ``failed`` or
            ``resuming`` (another run owns the subject's live report)
        """
        initial_state: WorkflowState = {
            "subject_id": subject_id,
            "force_refresh": force_refresh,
            "urls": [],
            "total_urls": 0,
            "next_index": 0,
            "analyzed": 0,
            "skipped": 0,
            "status": "pending",
            "result": None,
            "errors": [],
            "step_timings": {},
        }
        logger.info("Starting research workflow", subject_id=subject_id)

        final_state = await self._graph.ainvoke(
            initial_state,
            config={"recursion_limit": self.max_competitors + 10},
        )
        logger.info(
            "Research workflow finished",
            subject_id=subject_id,
            status=final_state.get("status"),
            analyzed=final_state.get("analyzed", 0),
            skipped=final_state.get("skipped", 0),
        )
        return final_state
