"""Billing plan schemas."""

from enum import Enum


class BillingPlan(str, Enum):
    """Billing plan tiers."""

    TRIAL = "trial"
    DEVELOPER = "developer"
    PRO = "pro"
    TEAM = "team"
    ENTERPRISE = "enterprise"

    @classmethod
    def normalize(cls, value: str) -> "BillingPlan":
        """Normalize billing plan values from database to enum.

        Handles legacy uppercase values and the old level names.
        """
        if not value:
            return cls.TRIAL

        value_lower = value.lower()
        mapping = {
            "trial": cls.TRIAL,
            "free": cls.TRIAL,  # Legacy mapping
            "developer": cls.DEVELOPER,
            "level_1": cls.DEVELOPER,  # Legacy mapping
            "pro": cls.PRO,
            "level_2": cls.PRO,  # Legacy mapping
            "startup": cls.PRO,  # Legacy mapping
            "team": cls.TEAM,
            "level_3": cls.TEAM,  # Legacy mapping
            "enterprise": cls.ENTERPRISE,
        }

        return mapping.get(value_lower, cls.TRIAL)
