"""
Exception classes shared by every pipeline stage.
"""
from typing import Any, Dict, Iterable, Optional


class CarMarketError(Exception):
    """Base exception for pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class SchemaMismatchError(CarMarketError):
    """Raised when a stage receives a table without a column it requires."""

    def __init__(self, stage: str, missing: Iterable[str]):
        missing = list(missing)
        message = f"{stage}: missing required column(s): {', '.join(missing)}"
        super().__init__(message, details={"stage": stage, "missing": missing})


class UnseenLevelError(CarMarketError):
    """Raised when a frozen category domain meets a level it was not built from."""

    def __init__(self, column: str, levels: Iterable[str]):
        levels = sorted(map(str, levels))
        message = f"Column '{column}' has levels outside the frozen domain: {levels}"
        super().__init__(message, details={"column": column, "levels": levels})
