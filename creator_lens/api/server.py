"""FastAPI server exposing creator_lens personalization, suggestions and insights."""
import logging
from datetime import date, datetime
from typing import Literal, Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from creator_lens.config import get_settings
from creator_lens.core import CreatorLens
from creator_lens.errors import ConcurrentUpdateError, InvariantViolation, NotFoundError, SuggestionLimitExceeded
from creator_lens.models import (
    CategoryGroup,
    ContentMetrics,
    ContentResult,
    EventMeta,
    EventType,
    FormatType,
    GenerationRecord,
    Goal,
    OnboardingAnswers,
    OpeningType,
    PersonaEvent,
    Platform,
    Tone,
)

_log = logging.getLogger(__name__)

app = FastAPI(title="creator-lens API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["*"],
)

_lens: Optional[CreatorLens] = None


def get_lens() -> CreatorLens:
    global _lens
    if _lens is None:
        _lens = CreatorLens.from_settings()
    return _lens


@app.on_event("startup")
async def _startup() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    lens = app.dependency_overrides.get(get_lens, get_lens)()
    await lens.init()
    _log.info("creator-lens ready  db=%s  plan=%s", settings.db_path, settings.default_plan)


# ── Request models ───────────────────────────────────────────────────────────

class EventRequest(BaseModel):
    id: Optional[str] = None
    event_type: EventType
    meta: EventMeta = Field(default_factory=EventMeta)
    generation_id: Optional[str] = None


class GenerationRequest(BaseModel):
    id: Optional[str] = None
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


class ResultRequest(BaseModel):
    id: Optional[str] = None
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
    posted_at: Optional[datetime] = None


class SuggestionsRequest(BaseModel):
    platforms: Optional[list[Platform]] = None
    count: Optional[int] = Field(default=None, ge=1)
    explore_ratio: Optional[float] = Field(default=None, ge=0, le=1)
    locale: str = "en"
    regenerate: bool = False


class UseSuggestionRequest(BaseModel):
    generation_id: Optional[str] = None


class WeeklyInsightsRequest(BaseModel):
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    locale: str = "en"


# ── Endpoints ────────────────────────────────────────────────────────────────

@app.get("/api/health")
def health():
    """Check that required env vars are set."""
    if not get_settings().openai_api_key:
        raise HTTPException(status_code=503, detail="OPENAI_API_KEY not set")
    return {"status": "ok"}


@app.post("/api/users/{user_id}/events")
async def log_event(user_id: str, req: EventRequest, lens: CreatorLens = Depends(get_lens)):
    """Fold a behavioural event into the user's persona."""
    fields = req.model_dump(exclude_none=True)
    try:
        profile = await lens.log_event(PersonaEvent(user_id=user_id, **fields))
    except ConcurrentUpdateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except InvariantViolation as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"tracked": profile is not None, "persona": profile}


@app.post("/api/users/{user_id}/onboarding")
async def onboarding(user_id: str, answers: OnboardingAnswers, lens: CreatorLens = Depends(get_lens)):
    profile = await lens.onboard(user_id, answers)
    return {"tracked": profile is not None, "persona": profile}


@app.get("/api/users/{user_id}/persona")
async def get_persona(user_id: str, lens: CreatorLens = Depends(get_lens)):
    profile = await lens.personas.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Persona not found")
    return profile


@app.get("/api/users/{user_id}/persona/summary")
async def get_persona_summary(user_id: str, lens: CreatorLens = Depends(get_lens)):
    summary = await lens.personas.summary(user_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Persona not found")
    return summary


@app.post("/api/users/{user_id}/persona/recalculate")
async def recalculate_persona(user_id: str, lens: CreatorLens = Depends(get_lens)):
    """Rebuild the persona from the full event log."""
    profile = await lens.personas.recalculate(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="No events for user")
    return profile


@app.get("/api/users/{user_id}/overlay")
async def get_overlay(user_id: str, lens: CreatorLens = Depends(get_lens)):
    return await lens.overlay(user_id)


@app.post("/api/users/{user_id}/generations")
async def record_generation(user_id: str, req: GenerationRequest, lens: CreatorLens = Depends(get_lens)):
    record = GenerationRecord(user_id=user_id, **req.model_dump(exclude_none=True))
    stats = await lens.patterns.record_generation(record)
    return {"generation_id": record.id, "pattern": stats}


@app.post("/api/users/{user_id}/results")
async def add_result(user_id: str, req: ResultRequest, lens: CreatorLens = Depends(get_lens)):
    """Record a published result; idempotent on the result id."""
    try:
        result, stats = await lens.add_result(ContentResult(user_id=user_id, **req.model_dump(exclude_none=True)))
    except InvariantViolation as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"result": result, "pattern": stats}


@app.patch("/api/users/{user_id}/results/{result_id}")
async def update_result(user_id: str, result_id: str, metrics: ContentMetrics, lens: CreatorLens = Depends(get_lens)):
    try:
        result, stats = await lens.update_result(user_id, result_id, metrics)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Result not found")
    return {"result": result, "pattern": stats}


@app.get("/api/users/{user_id}/patterns")
async def top_patterns(
    user_id: str,
    platform: Optional[Platform] = None,
    limit: int = 10,
    lens: CreatorLens = Depends(get_lens),
):
    return await lens.patterns.top_patterns(user_id, [platform] if platform else None, limit=limit)


@app.post("/api/users/{user_id}/patterns/recalculate")
async def recalculate_patterns(user_id: str, lens: CreatorLens = Depends(get_lens)):
    return await lens.patterns.recalculate(user_id)


@app.get("/api/users/{user_id}/performance-bias")
async def performance_bias(
    user_id: str,
    platform: Platform,
    category_group: Optional[CategoryGroup] = None,
    category_slug: Optional[str] = None,
    tone: Optional[Tone] = None,
    goal: Optional[Goal] = None,
    locale: str = "en",
    lens: CreatorLens = Depends(get_lens),
):
    """Stats to bias a generation prompt with; ``bias`` is null when there is not enough data."""
    bias = await lens.patterns.performance_bias(
        user_id, platform, category_group, category_slug, tone, goal, locale
    )
    return {"bias": bias}


@app.get("/api/users/{user_id}/suggestions")
async def todays_suggestions(user_id: str, lens: CreatorLens = Depends(get_lens)):
    return await lens.suggestions.todays(user_id)


@app.get("/api/users/{user_id}/suggestions/allowance")
async def suggestion_allowance(user_id: str, locale: str = "en", lens: CreatorLens = Depends(get_lens)):
    return await lens.suggestions.can_generate(user_id, locale=locale)


@app.get("/api/users/{user_id}/suggestions/stats")
async def suggestion_stats(user_id: str, lens: CreatorLens = Depends(get_lens)):
    return await lens.suggestions.stats(user_id)


@app.post("/api/users/{user_id}/suggestions")
async def generate_suggestions(user_id: str, req: SuggestionsRequest, lens: CreatorLens = Depends(get_lens)):
    """Generate today's batch. Partial batches are normal; ``failed`` counts the skipped ideas."""
    try:
        return await lens.suggestions.generate_daily(
            user_id,
            req.platforms,
            req.count,
            req.explore_ratio,
            locale=req.locale,
            regenerate=req.regenerate,
        )
    except SuggestionLimitExceeded as exc:
        raise HTTPException(
            status_code=429,
            detail={"message": str(exc), "limit": exc.limit, "requested": exc.requested, "existing": exc.existing},
        )


@app.post("/api/users/{user_id}/suggestions/{suggestion_id}/use")
async def use_suggestion(
    user_id: str,
    suggestion_id: str,
    req: UseSuggestionRequest,
    lens: CreatorLens = Depends(get_lens),
):
    try:
        return await lens.suggestions.mark_used(user_id, suggestion_id, req.generation_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Suggestion not found")


@app.post("/api/users/{user_id}/insights/weekly")
async def generate_weekly(user_id: str, req: WeeklyInsightsRequest, lens: CreatorLens = Depends(get_lens)):
    """``insight`` is null when the week has too few results or the plan has no insights."""
    insight = await lens.generate_weekly(user_id, req.period_start, req.period_end, req.locale)
    return {"insight": insight}


@app.get("/api/users/{user_id}/insights/latest")
async def latest_insight(user_id: str, lens: CreatorLens = Depends(get_lens)):
    insight = await lens.insights.latest(user_id)
    if insight is None:
        raise HTTPException(status_code=404, detail="No insights yet")
    return insight


@app.get("/api/users/{user_id}/insights/availability")
async def insights_availability(user_id: str, lens: CreatorLens = Depends(get_lens)):
    return await lens.insights.data_availability(user_id)


@app.get("/api/users/{user_id}/insights/summary")
async def insights_summary(user_id: str, lens: CreatorLens = Depends(get_lens)):
    return await lens.insights.dashboard_summary(user_id)
