"""
Workpaper Errors

Error taxonomy shared by the program engine, the analytics engine and the
HTTP routes. Every error carries the HTTP status the routes report it with.
"""

from typing import Optional


class WorkpaperError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code: int = 500
    code: str = "WORKPAPER_ERROR"

    def __init__(self, message: str, target: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.target = target

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(WorkpaperError):
    """Missing or malformed request fields."""

    status_code = 400
    code = "VALIDATION_ERROR"


class UnknownRuleError(WorkpaperError):
    """Test id has no registered rule (catalogue/configuration mismatch)."""

    status_code = 422
    code = "UNKNOWN_RULE"

    def __init__(self, test_id: str):
        super().__init__(f"Unknown test ID: {test_id}", target=test_id)
        self.test_id = test_id


class RowShapeError(WorkpaperError):
    """A single cell could not be read the way a rule expects.

    Raised per row and handled inside the rule; never aborts a run.
    """

    status_code = 400
    code = "ROW_SHAPE"


class ReferenceIntegrityViolation(WorkpaperError):
    """Link/delete/add against an id that does not exist in the program."""

    status_code = 404
    code = "REFERENCE_INTEGRITY"
