"""Ports to the systems this package talks to but does not own.

The LLM side only ever sees ``HookRequest`` / ``SummaryRequest``; the billing
side only answers entitlement questions. Both are Protocols so tests and
embedding applications can pass plain objects.
"""
from typing import Optional, Protocol

from pydantic import BaseModel

from creator_lens.models import CTAStyle, FormatType, PersonaOverlay, Platform, Tone


class HookRequest(BaseModel):
    user_id: str
    platform: Platform
    tone: Tone
    format: FormatType
    cta_style: CTAStyle = CTAStyle.SOFT
    target_hook_length: float = 12.0
    niche: Optional[str] = None
    locale: str = "en"
    is_exploration: bool = False
    # Bias hints: the user's persona and, for exploitation, the pattern being reused.
    overlay: Optional[PersonaOverlay] = None
    pattern_key: Optional[str] = None
    reference_preview: Optional[str] = None
    avg_engagement_rate: Optional[float] = None


class SummaryRequest(BaseModel):
    user_id: str
    locale: str = "en"
    total_content: int
    total_views: int
    avg_engagement_rate: float
    views_change: float
    best_tone: Optional[str] = None
    best_format: Optional[str] = None
    best_platform: Optional[str] = None
    recommendations: list[str] = []


class ContentGenerator(Protocol):
    def generate_hook(self, request: HookRequest) -> Optional[str]: ...

    def generate_summary(self, request: SummaryRequest) -> Optional[str]: ...


class EntitlementProvider(Protocol):
    def personalization_enabled(self, user_id: str) -> bool: ...

    def daily_suggestion_limit(self, user_id: str) -> int: ...

    def weekly_insights_enabled(self, user_id: str) -> bool: ...


class Plan(BaseModel):
    personalization: bool
    daily_suggestions: int
    weekly_insights: bool


PLANS: dict[str, Plan] = {
    "free": Plan(personalization=False, daily_suggestions=1, weekly_insights=False),
    "creator_pro": Plan(personalization=True, daily_suggestions=3, weekly_insights=True),
    "business_pro": Plan(personalization=True, daily_suggestions=5, weekly_insights=True),
}


class PlanEntitlements:
    """Entitlements looked up from a static plan table.

    Users without an explicit assignment get ``default_plan``; unknown plan
    names fall back to ``free``.
    """

    def __init__(self, default_plan: str = "creator_pro", assignments: Optional[dict[str, str]] = None) -> None:
        self.default_plan = default_plan
        self.assignments = dict(assignments or {})

    def assign(self, user_id: str, plan: str) -> None:
        self.assignments[user_id] = plan

    def plan_for(self, user_id: str) -> Plan:
        name = self.assignments.get(user_id, self.default_plan)
        return PLANS.get(name, PLANS["free"])

    def personalization_enabled(self, user_id: str) -> bool:
        return self.plan_for(user_id).personalization

    def daily_suggestion_limit(self, user_id: str) -> int:
        return self.plan_for(user_id).daily_suggestions

    def weekly_insights_enabled(self, user_id: str) -> bool:
        return self.plan_for(user_id).weekly_insights
