from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

FREE = "free"
PAID = "paid"


@dataclass(frozen=True)
class PlanConfig:
    name: str
    email_limit: int
    batch_size: int
    features: Dict[str, bool] = field(default_factory=dict)


PLAN_CONFIGS: Dict[str, PlanConfig] = {
    FREE: PlanConfig(
        name="Free",
        email_limit=50,
        batch_size=10,
        features={
            "ai_replies": False,
            "voice_training": False,
            "custom_categories": False,
            "advanced_search": False,
        },
    ),
    PAID: PlanConfig(
        name="Pro",
        email_limit=500,
        batch_size=50,
        features={
            "ai_replies": True,
            "voice_training": True,
            "custom_categories": True,
            "advanced_search": True,
        },
    ),
}


def get_plan_config(plan_type: str) -> PlanConfig:
    # Unknown plans are treated as free.
    return PLAN_CONFIGS.get(plan_type, PLAN_CONFIGS[FREE])


def get_email_limit(plan_type: str) -> int:
    return get_plan_config(plan_type).email_limit


def can_use_feature(plan_type: str, feature: str) -> bool:
    return get_plan_config(plan_type).features.get(feature, False)
