"""Job orchestration: state machine, stages, registry, broadcaster and runner.

Import the runner from ``contentfactory.orchestrator.runner`` and the
default wiring from ``contentfactory.orchestrator.wiring``.
"""

from contentfactory.orchestrator.errors import (
    ContentFactoryError,
    GenerationTimeoutError,
    JobCancelled,
    JobNotFoundError,
    PersistenceError,
    StageError,
)
from contentfactory.orchestrator.state import JobState

__all__ = [
    "ContentFactoryError",
    "GenerationTimeoutError",
    "JobCancelled",
    "JobNotFoundError",
    "JobState",
    "PersistenceError",
    "StageError",
]
