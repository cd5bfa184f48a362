"""Lookup of catalog subjects by identifier."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from product_research.models.schemas import Subject
from product_research.utils.logger import get_logger

logger = get_logger(__name__)


class SubjectCatalog(ABC):
    """Abstract interface for resolving subjects."""

    @abstractmethod
    async def get(self, subject_id: str) -> Optional[Subject]:
        """Return the subject, or None when the id is unknown."""


class InMemoryCatalog(SubjectCatalog):

    def __init__(self, subjects: Iterable[Subject] = ()):
        self._subjects = {s.id: s for s in subjects}

    def add(self, subject: Subject) -> None:
        self._subjects[subject.id] = subject

    async def get(self, subject_id: str) -> Optional[Subject]:
        return self._subjects.get(str(subject_id))


class JsonFileCatalog(SubjectCatalog):
    """
    Subjects read from a JSON array of ``{id, title, category, brand}`` objects.

    The file is re-read on every lookup so edits are picked up between runs.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Subject]:
        if not self.path.exists():
            logger.warning("Catalog file not found", path=str(self.path))
            return {}
        items = json.loads(self.path.read_text(encoding="utf-8"))
        subjects = [Subject.model_validate(item) for item in items]
        return {s.id: s for s in subjects}

    async def get(self, subject_id: str) -> Optional[Subject]:
        return self._load().get(str(subject_id))
