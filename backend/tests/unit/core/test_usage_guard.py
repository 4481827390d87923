"""Tests for the usage guard."""

import pytest

from quarry.core import usage_guard
from quarry.core.exceptions import QuotaExceededException
from quarry.schemas.organization_billing import BillingPlan
from quarry.schemas.usage import PlanLimits, Usage


def test_usage_equal_to_limit_is_allowed():
    """Test that reaching a limit exactly does not deny."""
    limits = PlanLimits(storage_bytes=100, stored_tokens=10, datasources=5, processed_documents=1)
    usage = Usage(storage_bytes=100, stored_tokens=10, datasources=5, processed_documents=1)

    decision = usage_guard.evaluate(usage, limits)

    assert decision.allowed is True
    assert decision.exceeded == []


def test_usage_above_limit_is_denied():
    """Test that one unit over a limit denies and names the dimension."""
    limits = PlanLimits(storage_bytes=100, datasources=5)
    usage = Usage(storage_bytes=101, datasources=5)

    decision = usage_guard.evaluate(usage, limits)

    assert decision.allowed is False
    assert decision.exceeded == ["storage_bytes"]


def test_every_exceeded_dimension_is_reported():
    """Test that all dimensions over their limit are listed, in tracked order."""
    limits = PlanLimits(storage_bytes=1, stored_tokens=1, datasources=1, processed_documents=1)
    usage = Usage(storage_bytes=2, stored_tokens=1, datasources=2, processed_documents=2)

    decision = usage_guard.evaluate(usage, limits)

    assert decision.exceeded == ["storage_bytes", "datasources", "processed_documents"]


def test_unlimited_dimension_never_denies():
    """Test that a None limit is unlimited."""
    usage = Usage(storage_bytes=10**15, stored_tokens=10**12, datasources=10**6)

    decision = usage_guard.evaluate(usage, PlanLimits())

    assert decision.allowed is True


def test_evaluate_restricted_to_given_dimensions():
    """Test that only the requested dimensions are checked."""
    limits = PlanLimits(storage_bytes=1, datasources=1)
    usage = Usage(storage_bytes=5, datasources=5)

    decision = usage_guard.evaluate(usage, limits, dimensions=["datasources"])

    assert decision.exceeded == ["datasources"]


def test_enterprise_plan_is_unlimited():
    """Test that the enterprise plan allows any usage."""
    usage = Usage(storage_bytes=10**15, stored_tokens=10**12, datasources=10**6)

    usage_guard.enforce(usage, BillingPlan.ENTERPRISE)


def test_legacy_and_unknown_plans_resolve_to_known_tiers():
    """Test plan resolution from stored string values."""
    assert usage_guard.get_plan_limits("level_2") == usage_guard.PLAN_LIMITS[BillingPlan.PRO]
    assert usage_guard.get_plan_limits("mystery") == usage_guard.PLAN_LIMITS[BillingPlan.TRIAL]
    assert usage_guard.get_plan_limits(None) == usage_guard.PLAN_LIMITS[BillingPlan.TRIAL]


def test_enforce_raises_quota_exceeded():
    """Test that enforce raises with the exceeded dimensions and plan."""
    trial = usage_guard.PLAN_LIMITS[BillingPlan.TRIAL]
    usage = Usage(datasources=trial.datasources + 1)

    with pytest.raises(QuotaExceededException) as exc_info:
        usage_guard.enforce(usage, BillingPlan.TRIAL)

    assert exc_info.value.exceeded == ["datasources"]
    assert exc_info.value.plan == BillingPlan.TRIAL
    assert exc_info.value.status_code == 402
    assert "trial" in exc_info.value.message
