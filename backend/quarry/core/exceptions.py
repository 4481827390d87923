"""Exceptions raised by Quarry services.

Every failure surfaced to a caller has its own class so that API handlers and
operators can tell them apart. The HTTP status each one maps to lives on the
class and is used by the exception handlers registered in `quarry.main`.
"""

from typing import Any, List, Optional


class QuarryException(Exception):
    """Base exception for Quarry services."""

    status_code: int = 500
    kind: str = "internal_error"

    def __init__(self, message: Optional[str] = None):
        """Initialize the exception.

        Args:
            message: Human-readable description
        """
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)


class NotFoundException(QuarryException):
    """Referenced entity does not exist."""

    status_code = 404
    kind = "not_found"


class UnauthorizedException(QuarryException):
    """Resource belongs to another organization."""

    status_code = 403
    kind = "unauthorized"


class ValidationException(QuarryException):
    """Input was malformed and rejected before any side effect."""

    status_code = 422
    kind = "validation_error"


class ConflictException(QuarryException):
    """Another operation currently holds the lease on this resource."""

    status_code = 409
    kind = "conflict"


class QuotaExceededException(QuarryException):
    """Organization usage exceeds its plan limits. No mutation was performed."""

    status_code = 402
    kind = "quota_exceeded"

    def __init__(self, exceeded: List[str], plan: Any = None):
        """Initialize quota exceeded exception.

        Args:
            exceeded: Names of the usage dimensions over their limit
            plan: Plan tier the limits came from
        """
        self.exceeded = exceeded
        self.plan = plan
        plan_name = getattr(plan, "value", plan)
        super().__init__(
            f"Usage limit exceeded for {', '.join(exceeded)}"
            + (f" on plan '{plan_name}'" if plan_name else "")
        )


class DispatchFailedException(QuarryException):
    """Sync task could not be enqueued.

    The datasource status has already been set to pending; the caller may
    retry the dispatch.
    """

    status_code = 503
    kind = "dispatch_failed"


class TransactionFailedException(QuarryException):
    """Relational deletion was rolled back.

    Object storage deletion is not covered by the transaction and may already
    have completed.
    """

    status_code = 500
    kind = "transaction_failed"


class DeletionTimeoutException(TransactionFailedException):
    """Deletion transaction exceeded its lock wait or total duration and was rolled back."""

    status_code = 504
    kind = "timeout"


class UsageRecomputeFailedException(QuarryException):
    """Usage could not be recomputed after a committed deletion.

    The deletion itself stands; recomputation is idempotent and can be retried.
    """

    status_code = 500
    kind = "usage_recompute_failed"

    def __init__(self, message: str, deleted: Any = None):
        """Initialize usage recompute failure.

        Args:
            message: Description of the failure
            deleted: Summary of the datastore that was deleted
        """
        self.deleted = deleted
        super().__init__(message)
