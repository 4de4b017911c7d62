"""
Error types raised by the tracker core.

None of these are fatal: validation errors are surfaced before any I/O,
remote errors trigger an optimistic rollback, cache errors degrade to a cache
miss and reachability timeouts are treated as "offline".
"""

from typing import Dict, Optional


class CGPATrackerError(Exception):
    """Base class for all tracker errors"""


class ValidationError(CGPATrackerError):
    """Field-level form validation failure"""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid input: {fields}")


class RemoteError(CGPATrackerError):
    """Backend or network failure"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def is_not_found(self) -> bool:
        # PostgREST reports "no rows for .single()" as PGRST116
        return self.code == "PGRST116"


class CacheError(CGPATrackerError):
    """Local persistence read/write failure"""


class ReachabilityTimeout(CGPATrackerError):
    """Connectivity probe did not answer within its timeout"""


__all__ = [
    "CGPATrackerError",
    "ValidationError",
    "RemoteError",
    "CacheError",
    "ReachabilityTimeout",
]
