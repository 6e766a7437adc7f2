import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Closed vocabularies ──────────────────────────────────────────────────────
# Declaration order doubles as the tie-break order for argmax lookups.

class Tone(str, Enum):
    FUNNY = "funny"
    SERIOUS = "serious"
    EDUCATIONAL = "educational"
    CONTROVERSIAL = "controversial"
    INSPIRATIONAL = "inspirational"


class OpeningType(str, Enum):
    QUESTION = "question"
    STATEMENT = "statement"
    STATISTIC = "statistic"
    STORY = "story"
    CHALLENGE = "challenge"


class FormatType(str, Enum):
    LISTICLE = "listicle"
    STORY = "story"
    TUTORIAL = "tutorial"
    REACTION = "reaction"
    COMPARISON = "comparison"


class CTAStyle(str, Enum):
    SOFT = "soft"
    DIRECT = "direct"
    URGENT = "urgent"
    QUESTION = "question"


class Pacing(str, Enum):
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class Platform(str, Enum):
    TIKTOK = "tiktok"
    INSTAGRAM_REELS = "instagram_reels"
    INSTAGRAM_POST = "instagram_post"
    YOUTUBE_SHORTS = "youtube_shorts"


class CategoryGroup(str, Enum):
    CREATOR = "creator"
    BUSINESS = "business"


class Goal(str, Enum):
    VIEWS = "views"
    FOLLOWERS = "followers"
    ENGAGEMENT = "engagement"
    SALES = "sales"


class EventType(str, Enum):
    GENERATION = "generation"
    SAVE = "save"
    EXPORT = "export"
    AB_TEST_WIN = "ab_test_win"
    RESULT_ADDED = "result_added"
    ONBOARDING = "onboarding"


def uniform(kind: type[Enum]) -> dict:
    """Equal weight for every member of a closed vocabulary."""
    members = list(kind)
    return {m: 1.0 / len(members) for m in members}


# ── Persona ──────────────────────────────────────────────────────────────────

class OnboardingAnswers(BaseModel):
    preferred_tone: Optional[Tone] = None
    content_style: Optional[Literal["fast_paced", "slow_detailed", "balanced"]] = None
    cta_preference: Optional[CTAStyle] = None
    hook_style: Optional[Literal["short_punchy", "long_detailed", "balanced"]] = None
    target_audience: Optional[str] = None
    niche: Optional[str] = None


class EventMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    tone: Optional[Tone] = None
    opening_type: Optional[OpeningType] = None
    format: Optional[FormatType] = None
    cta_style: Optional[CTAStyle] = None
    pacing: Optional[Pacing] = None
    hook_length: Optional[float] = Field(default=None, gt=0)
    platform: Optional[Platform] = None
    performance_score: Optional[float] = Field(default=None, ge=0, le=100)
    content_snippet: Optional[str] = None
    onboarding: Optional[OnboardingAnswers] = None


class PersonaEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    event_type: EventType
    meta: EventMeta = Field(default_factory=EventMeta)
    generation_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class ScoreTally(BaseModel):
    count: int = 0
    total: float = 0.0

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0


class PersonaProfile(BaseModel):
    user_id: str
    tone_weights: dict[Tone, float] = Field(default_factory=lambda: uniform(Tone))
    opening_bias: dict[OpeningType, float] = Field(default_factory=lambda: uniform(OpeningType))
    format_bias: dict[FormatType, float] = Field(default_factory=lambda: uniform(FormatType))
    cta_style: CTAStyle = CTAStyle.SOFT
    pacing: Pacing = Pacing.MEDIUM
    avg_hook_length: float = 12.0   # words
    total_generations: int = 0
    total_saves: int = 0
    total_exports: int = 0
    total_ab_wins: int = 0
    # Outcome-derived; stay None until enough scored outcomes arrive.
    avg_performance_score: Optional[float] = None
    best_performing_tone: Optional[Tone] = None
    best_performing_opening: Optional[OpeningType] = None
    best_performing_format: Optional[FormatType] = None
    outcome_samples: int = 0
    outcome_score_total: float = 0.0
    tone_outcomes: dict[Tone, ScoreTally] = Field(default_factory=dict)
    opening_outcomes: dict[OpeningType, ScoreTally] = Field(default_factory=dict)
    format_outcomes: dict[FormatType, ScoreTally] = Field(default_factory=dict)
    onboarding_answers: Optional[OnboardingAnswers] = None
    version: int = 0                # bumped by the store on every committed write
    created_at: datetime = Field(default_factory=utc_now)
    last_updated_at: datetime = Field(default_factory=utc_now)


class OverlayPerformance(BaseModel):
    best_tone: Optional[Tone] = None
    best_format: Optional[FormatType] = None
    avg_score: Optional[float] = None


class PersonaOverlay(BaseModel):
    enabled: bool
    tone_preference: Tone
    tone_strength: float = Field(ge=0, le=1)
    opening_preference: OpeningType
    format_preference: FormatType
    cta_style: CTAStyle
    target_hook_length: float
    pacing: Pacing
    performance_insights: OverlayPerformance = Field(default_factory=OverlayPerformance)


class PersonaSummary(BaseModel):
    dominant_tone: Tone
    dominant_tone_percentage: int
    best_performing_format: Optional[FormatType]
    typical_hook_length: float
    cta_style: CTAStyle
    pacing: Pacing
    total_content_generated: int
    save_rate: float
    has_enough_data: bool


# ── Generations, results and patterns ────────────────────────────────────────

class GenerationRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    feature: Literal["hooks", "planner", "abtest", "script"] = "hooks"
    platform: Platform
    category_group: Optional[CategoryGroup] = None
    category_slug: Optional[str] = None
    tone: Optional[Tone] = None
    goal: Optional[Goal] = None
    format: Optional[FormatType] = None
    opening_type: Optional[OpeningType] = None
    output_preview: Optional[str] = Field(default=None, max_length=500)
    output_count: int = 1
    model_used: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class ContentMetrics(BaseModel):
    views: int = Field(default=0, ge=0)
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    saves: int = Field(default=0, ge=0)
    followers_gained: int = 0
    completion_rate: Optional[float] = Field(default=None, ge=0, le=1)
    engagement_rate: Optional[float] = Field(default=None, ge=0)  # percent


class ContentResult(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    generation_id: Optional[str] = None
    platform: Platform
    category_group: Optional[CategoryGroup] = None
    category_slug: Optional[str] = None
    tone: Optional[Tone] = None
    goal: Optional[Goal] = None
    format: Optional[FormatType] = None
    opening_type: Optional[OpeningType] = None
    content_type: Literal["hook", "plan", "abtest", "script"] = "hook"
    content_preview: Optional[str] = Field(default=None, max_length=500)
    metrics: ContentMetrics = Field(default_factory=ContentMetrics)
    # Filled in by the pattern engine when the result is recorded.
    engagement_rate: float = 0.0
    performance_score: float = 0.0
    pattern_key: Optional[str] = None
    posted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def effective_date(self) -> date:
        return (self.posted_at or self.created_at).date()


class PatternStats(BaseModel):
    user_id: str
    pattern_key: str
    platform: Platform
    category_group: Optional[CategoryGroup] = None
    category_slug: Optional[str] = None
    tone: Optional[Tone] = None
    goal: Optional[Goal] = None
    total_generations: int = 0
    total_results: int = 0
    avg_views: float = 0.0
    avg_engagement_rate: float = 0.0
    weighted_score: float = 0.0
    best_performing_preview: Optional[str] = None
    last_calculated_at: datetime = Field(default_factory=utc_now)


class PerformanceBias(BaseModel):
    pattern_key: str
    platform: Platform
    tone: Optional[Tone] = None
    goal: Optional[Goal] = None
    weighted_score: float
    avg_engagement_rate: float
    avg_views: float
    best_performing_preview: Optional[str] = None
    recommendation: str


# ── Daily suggestions ────────────────────────────────────────────────────────

class SuggestionContent(BaseModel):
    hook_idea: str
    format: FormatType
    tone: Tone
    cta: str
    reason: str
    pattern_key: Optional[str] = None
    is_exploration: bool
    avg_engagement: Optional[float] = None
    confidence_score: float = Field(ge=0, le=100)


class DailySuggestion(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    suggestion_date: date
    platform: Platform
    content: SuggestionContent
    used: bool = False
    used_at: Optional[datetime] = None
    generation_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class SuggestionBatch(BaseModel):
    """Outcome of one ``generate_daily`` run.

    ``suggestions`` holds one snapshot per generated idea, in generation
    order. Rows are stored per (user, day, platform), so ideas on the same
    platform share an id and only the last of them is what storage keeps.
    """
    suggestions: list[DailySuggestion] = []
    patterns_used: list[str] = []
    exploitation_count: int = 0
    exploration_count: int = 0
    failed: int = 0     # candidates skipped after a generation or write failure
    limit: int = 0


class SuggestionAllowance(BaseModel):
    can_generate: bool
    existing_count: int
    limit: int
    reason: Optional[str] = None


class SuggestionStats(BaseModel):
    total_suggestions: int
    used_suggestions: int
    usage_rate: float
    top_patterns: list[str]


# ── Weekly insights ──────────────────────────────────────────────────────────

class AggregatedStats(BaseModel):
    dimension: str
    value: str
    count: int
    total_views: int
    avg_views: float
    total_engagement: int
    avg_engagement_rate: float


class BestPerformer(BaseModel):
    type: str
    value: str
    avg_engagement: float
    sample_count: int


class PlatformComparison(BaseModel):
    platform: Platform
    total_content: int
    avg_views: float
    avg_engagement_rate: float
    best_tone: Optional[Tone] = None
    best_format: Optional[FormatType] = None


class WeekOverWeekChange(BaseModel):
    views_change: float = 0.0        # percent
    engagement_change: float = 0.0   # percent
    content_count_change: int = 0


class InsightContent(BaseModel):
    summary: str
    best_format: Optional[BestPerformer] = None
    best_tone: Optional[BestPerformer] = None
    best_goal: Optional[Goal] = None
    best_platform: Optional[Platform] = None
    platform_comparison: list[PlatformComparison] = []
    week_over_week: WeekOverWeekChange = Field(default_factory=WeekOverWeekChange)
    recommendations: list[str] = Field(default_factory=list, max_length=5)
    persona_alignment_score: int = Field(ge=0, le=100)
    total_content: int
    total_views: int
    total_engagement: int
    avg_engagement_rate: float
    top_performing_content: Optional[str] = None


class PerformanceInsight(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    period_start: date
    period_end: date
    content: InsightContent
    created_at: datetime = Field(default_factory=utc_now)


class InsightsAvailability(BaseModel):
    has_data: bool
    count: int
    minimum: int


class InsightsSummary(BaseModel):
    has_insights: bool
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    total_content: int = 0
    total_views: int = 0
    avg_engagement: float = 0.0
    views_change: float = 0.0
    engagement_change: float = 0.0
    best_platform: Optional[Platform] = None
    best_tone: Optional[str] = None
    top_recommendation: Optional[str] = None
