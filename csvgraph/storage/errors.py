"""Exception hierarchy and error classification for graph loading.

The store does not expose structured error codes for the statements issued here,
so errors are classified by inspecting the lowered message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional

CONNECTIVITY_MARKERS = ("connection", "broken pipe", "reset")
ALREADY_EXISTS_MARKERS = (
    "already exists",
    "equivalent",
    "already indexed",
    "index exists",
    "already created",
)
# Another schema object blocks the statement; the reply also says "already exists".
SCHEMA_CONFLICT_MARKERS = ("cannot be created until",)


class ErrorClass(str, Enum):
    """Coarse classification of a store failure."""

    CONNECTIVITY = "connectivity"
    ALREADY_EXISTS = "already_exists"
    GENERIC = "generic"


def classify_error_message(message: str) -> ErrorClass:
    """Classify an error message by substring.

    Connectivity markers win over schema conflicts, which win over "already exists"
    markers.
    """
    lowered = (message or "").lower()
    if any(marker in lowered for marker in CONNECTIVITY_MARKERS):
        return ErrorClass.CONNECTIVITY
    if any(marker in lowered for marker in SCHEMA_CONFLICT_MARKERS):
        return ErrorClass.GENERIC
    if any(marker in lowered for marker in ALREADY_EXISTS_MARKERS):
        return ErrorClass.ALREADY_EXISTS
    return ErrorClass.GENERIC


class LoaderError(Exception):
    """Base class for all loader errors."""


class CsvValidationError(LoaderError):
    """Input files are missing or malformed; raised before any write."""


class LabelValidationError(CsvValidationError):
    """Edge files reference labels that no node file provides."""

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = sorted(set(missing))
        super().__init__(
            f"Label validation failed: missing node files for labels: {self.missing}"
        )


class StoreError(LoaderError):
    """A statement failed inside the graph store."""

    def __init__(self, message: str, *, statement: Optional[str] = None):
        super().__init__(message)
        self.statement = statement


class ConnectivityError(StoreError):
    """The store looks unreachable or unusable; always fatal."""


class AlreadyExistsError(StoreError):
    """Schema object already exists; benign on re-runs."""


class StatementError(StoreError):
    """Generic statement failure; recoverable at batch or row granularity."""


class AbortedError(LoaderError):
    """The abort signal is set; the store was not contacted."""


class FileLoadError(LoaderError):
    """A whole file failed to load; fatal for the run."""

    def __init__(self, path: str, cause: BaseException):
        self.path = path
        self.cause = cause
        super().__init__(f"Critical error loading {path}: {cause}")


def store_error_from_message(message: str, *, statement: Optional[str] = None) -> StoreError:
    """Build the StoreError subclass matching ``classify_error_message``."""
    error_class = classify_error_message(message)
    if error_class is ErrorClass.CONNECTIVITY:
        return ConnectivityError(message, statement=statement)
    if error_class is ErrorClass.ALREADY_EXISTS:
        return AlreadyExistsError(message, statement=statement)
    return StatementError(message, statement=statement)
