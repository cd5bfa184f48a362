"""
Report persistence.

``ReportStore`` is the durable CRUD interface the pipeline consumes. Reports
are typed ``Report`` models end to end; backends only decide where the
serialized model lives.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from product_research.models.schemas import Report, ReportStatus
from product_research.utils.errors import ReportNotFoundError
from product_research.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class ReportStore(ABC):
    """
    Abstract interface for report persistence.

    Subclasses implement the four storage primitives (``_get``, ``_put``,
    ``_remove``, ``_all``); query and mutation helpers are shared. All
    mutations are serialized through one lock per store instance, which
    makes :meth:`create_if_absent` an atomic insert-if-absent within a
    process.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Storage primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _get(self, report_id: str) -> Optional[Report]:
        """Return the stored report, or None."""

    @abstractmethod
    async def _put(self, report: Report) -> None:
        """Insert or replace a report."""

    @abstractmethod
    async def _remove(self, report_id: str) -> bool:
        """Delete a report; return whether it existed."""

    @abstractmethod
    async def _all(self) -> Iterable[Report]:
        """Every stored report, in no particular order."""

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def create(self, subject_id: str) -> Report:
        async with self._lock:
            return await self._insert(subject_id)

    async def create_if_absent(self, subject_id: str) -> tuple[Report, bool]:
        """
        Return the subject's in-progress report, or create one.

        Returns:
            ``(report, created)``; ``created`` is False when an existing
            non-terminal report was returned.
        """
        async with self._lock:
            existing = await self._find_in_progress(subject_id)
            if existing is not None:
                return existing, False
            return await self._insert(subject_id), True

    async def _insert(self, subject_id: str) -> Report:
        report = Report(subject_id=str(subject_id), created_at=self._clock())
        await self._put(report)
        logger.info("Report created", report_id=report.id, subject_id=report.subject_id)
        return report

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def find_by_id(self, report_id: str) -> Optional[Report]:
        return await self._get(report_id)

    async def get(self, report_id: str) -> Report:
        report = await self._get(report_id)
        if report is None:
            raise ReportNotFoundError(f"Report not found: {report_id}")
        return report

    async def find_in_progress(self, subject_id: str) -> Optional[Report]:
        return await self._find_in_progress(subject_id)

    async def _find_in_progress(self, subject_id: str) -> Optional[Report]:
        candidates = [
            r for r in await self._all()
            if r.subject_id == str(subject_id) and not r.is_terminal
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.created_at)

    async def find_by_subject(self, subject_id: str, limit: int = 10) -> list[Report]:
        """Reports for a subject, newest first."""
        reports = [r for r in await self._all() if r.subject_id == str(subject_id)]
        reports.sort(key=lambda r: r.created_at, reverse=True)
        return reports[:limit]

    async def find_latest_complete(self, subject_id: str) -> Optional[Report]:
        complete = [
            r for r in await self._all()
            if r.subject_id == str(subject_id) and r.status == ReportStatus.COMPLETE
        ]
        if not complete:
            return None
        return max(complete, key=lambda r: r.completed_at or r.created_at)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def update(self, report_id: str, **fields: Any) -> Report:
        """Apply field updates and persist the re-validated report."""
        async with self._lock:
            report = await self._get(report_id)
            if report is None:
                raise ReportNotFoundError(f"Report not found: {report_id}")
            data = report.model_dump()
            data.update(fields)
            data["updated_at"] = self._clock()
            updated = Report.model_validate(data)
            await self._put(updated)
            return updated

    async def update_status(
        self,
        report_id: str,
        status: ReportStatus,
        message: str = "",
    ) -> Report:
        """Set the status; the progress message is only replaced when non-empty."""
        fields: dict[str, Any] = {"status": ReportStatus(status)}
        if message:
            fields["progress_message"] = message
        return await self.update(report_id, **fields)

    async def delete(self, report_id: str) -> bool:
        async with self._lock:
            deleted = await self._remove(report_id)
        if deleted:
            logger.info("Report deleted", report_id=report_id)
        return deleted

    async def delete_older_than(self, days: int, subject_id: Optional[str] = None) -> int:
        """Delete terminal reports created more than ``days`` ago."""
        cutoff = self._clock() - timedelta(days=days)
        deleted = 0
        async with self._lock:
            for report in list(await self._all()):
                if subject_id is not None and report.subject_id != str(subject_id):
                    continue
                if report.is_terminal and report.created_at < cutoff:
                    if await self._remove(report.id):
                        deleted += 1
        if deleted:
            logger.info("Old reports pruned", deleted=deleted, older_than_days=days)
        return deleted


class InMemoryReportStore(ReportStore):
    """In-memory report store for testing and single-process runs."""

    def __init__(self, clock: Optional[Clock] = None):
        super().__init__(clock)
        self._reports: dict[str, Report] = {}

    async def _get(self, report_id: str) -> Optional[Report]:
        report = self._reports.get(report_id)
        return report.model_copy(deep=True) if report else None

    async def _put(self, report: Report) -> None:
        self._reports[report.id] = report.model_copy(deep=True)

    async def _remove(self, report_id: str) -> bool:
        return self._reports.pop(report_id, None) is not None

    async def _all(self) -> Iterable[Report]:
        return [r.model_copy(deep=True) for r in self._reports.values()]


class JsonFileReportStore(ReportStore):
    """One JSON document per report under ``directory``."""

    def __init__(self, directory: Path, clock: Optional[Clock] = None):
        super().__init__(clock)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, report_id: str) -> Path:
        safe_id = "".join(c for c in report_id if c.isalnum() or c in "-_")
        return self.directory / f"{safe_id}.json"

    def _read(self, path: Path) -> Optional[Report]:
        try:
            return Report.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except ValueError as e:
            logger.warning("Skipping unreadable report file", path=str(path), error=str(e))
            return None

    async def _get(self, report_id: str) -> Optional[Report]:
        return self._read(self._path(report_id))

    async def _put(self, report: Report) -> None:
        path = self._path(report.id)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        tmp.replace(path)

    async def _remove(self, report_id: str) -> bool:
        path = self._path(report_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    async def _all(self) -> Iterable[Report]:
        reports = []
        for path in sorted(self.directory.glob("*.json")):
            report = self._read(path)
            if report is not None:
                reports.append(report)
        return reports
