"""Exceptions raised by the early reader scheduling engine."""
from typing import List, Optional


class SchedulerError(Exception):
    """Base class for every error the engine raises on purpose."""


class LearnerNotFoundError(SchedulerError):
    def __init__(self, learner_id: str) -> None:
        super().__init__(f"Learner not found: {learner_id}")
        self.learner_id = learner_id


class CardNotFoundError(SchedulerError):
    def __init__(self, word: str) -> None:
        super().__init__(f"Card not found in catalog: {word!r}")
        self.word = word


class StorageError(SchedulerError):
    """A progress store operation failed (I/O, constraint, driver error)."""


class CatalogError(SchedulerError):
    """The curriculum table violates a data invariant and cannot be used."""

    def __init__(self, problems: List[str], source: Optional[str] = None) -> None:
        where = f" ({source})" if source else ""
        summary = "; ".join(problems[:5])
        if len(problems) > 5:
            summary += f"; ... and {len(problems) - 5} more"
        super().__init__(f"Invalid curriculum catalog{where}: {summary}")
        self.problems = problems
