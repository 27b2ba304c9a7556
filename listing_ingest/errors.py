"""Error taxonomy for the ingestion pipeline.

Every error raised to callers derives from ``PipelineError`` and carries the
HTTP status and the single user-facing message the API renders for it.
"""
from datetime import datetime
from typing import List, Optional


class PipelineError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.message
        # detail is for logs only, never rendered to the caller
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


# Image stage

class InvalidFormat(PipelineError):
    status_code = 415
    message = "Invalid file type"


class TooLarge(PipelineError):
    status_code = 413
    message = "File size exceeds limit"


class CorruptImage(PipelineError):
    status_code = 400
    message = "Invalid image file"


class DerivativeGenerationFailed(PipelineError):
    status_code = 422
    message = "Failed to process image"


class ObjectStoreError(PipelineError):
    status_code = 502
    message = "Failed to store image"


# Submission stage

class FieldViolation:
    __slots__ = ("field", "message")

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}

    def __repr__(self):
        return f"FieldViolation({self.field!r}, {self.message!r})"


class ValidationFailed(PipelineError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, violations: List[FieldViolation]):
        super().__init__()
        self.violations = violations

    @property
    def fields(self) -> List[str]:
        return [v.field for v in self.violations]


class RateLimited(PipelineError):
    status_code = 429
    message = "Too many listing submissions, try again later"

    def __init__(self, remaining: int, reset_at: datetime):
        super().__init__()
        self.remaining = remaining
        self.reset_at = reset_at


# Record store

class RecordWriteFailed(PipelineError):
    status_code = 500
    message = "Failed to save listing"


class ListingNotFound(PipelineError):
    status_code = 404
    message = "Listing not found"


class CompensationPartialFailure(PipelineError):
    """Phase 2 failed and at least one compensating step failed too.

    Only ever logged; callers see the ``RecordWriteFailed`` that triggered
    the compensation.
    """

    def __init__(self, listing_id: str, listing_deleted: bool, failed_keys: List[str]):
        self.listing_id = listing_id
        self.listing_deleted = listing_deleted
        self.failed_keys = failed_keys
        super().__init__(
            f"compensation for listing {listing_id} incomplete: "
            f"listing_deleted={listing_deleted}, failed_keys={len(failed_keys)}"
        )
