"""Usage guard: decides whether an organization may consume more resources.

The guard is a pure function of a usage snapshot and a limit vector. Callers
evaluate it before any state mutation and treat the usage they pass in as a
snapshot that may already be stale.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from quarry.core.exceptions import QuotaExceededException
from quarry.schemas.organization_billing import BillingPlan
from quarry.schemas.usage import PlanLimits, Usage

GB = 1024**3

# Limits per billing plan (None = unlimited)
PLAN_LIMITS: Dict[BillingPlan, PlanLimits] = {
    BillingPlan.TRIAL: PlanLimits(
        storage_bytes=1 * GB // 10,
        stored_tokens=1_000_000,
        datasources=50,
        processed_documents=100,
    ),
    BillingPlan.DEVELOPER: PlanLimits(
        storage_bytes=1 * GB,
        stored_tokens=10_000_000,
        datasources=500,
        processed_documents=1_000,
    ),
    BillingPlan.PRO: PlanLimits(
        storage_bytes=10 * GB,
        stored_tokens=100_000_000,
        datasources=5_000,
        processed_documents=10_000,
    ),
    BillingPlan.TEAM: PlanLimits(
        storage_bytes=50 * GB,
        stored_tokens=500_000_000,
        datasources=50_000,
        processed_documents=100_000,
    ),
    BillingPlan.ENTERPRISE: PlanLimits(),
}

TRACKED_DIMENSIONS = ("storage_bytes", "stored_tokens", "datasources", "processed_documents")


@dataclass(frozen=True)
class UsageDecision:
    """Outcome of a guard evaluation."""

    allowed: bool
    exceeded: List[str] = field(default_factory=list)


def get_plan_limits(plan: Union[BillingPlan, str, None]) -> PlanLimits:
    """Resolve the limit vector of a plan tier. Unknown tiers fall back to trial."""
    if not isinstance(plan, BillingPlan):
        plan = BillingPlan.normalize(plan or "")
    return PLAN_LIMITS.get(plan, PLAN_LIMITS[BillingPlan.TRIAL])


def evaluate(
    usage: Usage,
    limits: PlanLimits,
    dimensions: Iterable[str] = TRACKED_DIMENSIONS,
) -> UsageDecision:
    """Compare usage to limits.

    A dimension denies only when its usage is strictly greater than its limit;
    usage equal to the limit is allowed.

    Args:
        usage: Usage snapshot
        limits: Limit vector
        dimensions: Dimensions to check

    Returns:
        UsageDecision listing every exceeded dimension
    """
    exceeded = []
    for dimension in dimensions:
        limit: Optional[int] = getattr(limits, dimension)
        if limit is None:
            continue
        if getattr(usage, dimension) > limit:
            exceeded.append(dimension)

    return UsageDecision(allowed=not exceeded, exceeded=exceeded)


def enforce(usage: Usage, plan: Union[BillingPlan, str, None]) -> None:
    """Raise if the usage exceeds the limits of the plan.

    Raises:
        QuotaExceededException: If any dimension is over its limit
    """
    decision = evaluate(usage, get_plan_limits(plan))
    if not decision.allowed:
        raise QuotaExceededException(exceeded=decision.exceeded, plan=plan)
