"""Wiring: one ``CreatorLens`` per process holds the store and every engine.

Engines are exposed as attributes (``personas``, ``patterns``, ``suggestions``,
``insights``). The methods here cover the operations that cross engines or
depend on the user's plan.
"""
import logging
import random
from datetime import date
from typing import Optional

from creator_lens.analyzers.insights import InsightsAggregator
from creator_lens.analyzers.openai_generator import OpenAIContentGenerator
from creator_lens.analyzers.pattern_stats import PatternStatsEngine
from creator_lens.analyzers.suggestions import SuggestionGenerator
from creator_lens.collaborators import ContentGenerator, EntitlementProvider, PlanEntitlements
from creator_lens.config import Settings, Tuning, get_settings
from creator_lens.models import (
    ContentMetrics,
    ContentResult,
    EventMeta,
    EventType,
    OnboardingAnswers,
    PatternStats,
    PersonaEvent,
    PersonaOverlay,
    PersonaProfile,
    PerformanceInsight,
)
from creator_lens.persona.service import PersonaService
from creator_lens.storage.store import SQLiteStore

_log = logging.getLogger(__name__)


class CreatorLens:
    def __init__(
        self,
        store: SQLiteStore,
        generator: ContentGenerator,
        entitlements: EntitlementProvider,
        tuning: Optional[Tuning] = None,
        *,
        strict: bool = False,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.entitlements = entitlements
        self.tuning = tuning or Tuning()
        self.personas = PersonaService(store, self.tuning, strict=strict)
        self.patterns = PatternStatsEngine(store, self.tuning, strict=strict)
        self.suggestions = SuggestionGenerator(
            store, self.patterns, self.personas, generator, entitlements, self.tuning, rng
        )
        self.insights = InsightsAggregator(store, generator, self.tuning)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CreatorLens":
        settings = settings or get_settings()
        store = SQLiteStore(
            settings.db_path,
            cas_retries=settings.tuning.cas_retries,
            read_retries=settings.tuning.read_retries,
        )
        return cls(
            store,
            OpenAIContentGenerator(model=settings.model, api_key=settings.openai_api_key),
            PlanEntitlements(settings.default_plan),
            settings.tuning,
            strict=settings.strict_invariants,
        )

    async def init(self) -> None:
        await self.store.init()

    # ── Persona ──────────────────────────────────────────────────────────────

    async def log_event(self, event: PersonaEvent) -> Optional[PersonaProfile]:
        """Learn from a behavioural event. Users without personalization are not tracked."""
        if not self.entitlements.personalization_enabled(event.user_id):
            _log.debug("personalization off for %s, ignoring %s", event.user_id, event.event_type.value)
            return None
        return await self.personas.record_event(event)

    async def onboard(self, user_id: str, answers: OnboardingAnswers) -> Optional[PersonaProfile]:
        if not self.entitlements.personalization_enabled(user_id):
            return None
        return await self.personas.seed_onboarding(user_id, answers)

    async def overlay(self, user_id: str) -> PersonaOverlay:
        return await self.personas.overlay_for(user_id, self.entitlements.personalization_enabled(user_id))

    # ── Results ──────────────────────────────────────────────────────────────

    async def add_result(self, result: ContentResult) -> tuple[ContentResult, PatternStats]:
        """Store a published result, refresh its pattern and feed the score back into the persona.

        The persona event id is derived from the result id, so submitting the
        same result twice folds it only once.
        """
        enriched = await self.patterns.enrich(result)
        stats = await self.patterns.record_enriched(enriched)
        if self.entitlements.personalization_enabled(enriched.user_id):
            await self.personas.record_event(
                PersonaEvent(
                    id=f"result-{enriched.id}",
                    user_id=enriched.user_id,
                    event_type=EventType.RESULT_ADDED,
                    generation_id=enriched.generation_id,
                    meta=EventMeta(
                        tone=enriched.tone,
                        opening_type=enriched.opening_type,
                        format=enriched.format,
                        platform=enriched.platform,
                        performance_score=enriched.performance_score,
                        content_snippet=enriched.content_preview,
                    ),
                )
            )
        return enriched, stats

    async def update_result(
        self, user_id: str, result_id: str, metrics: ContentMetrics
    ) -> tuple[ContentResult, PatternStats]:
        return await self.patterns.update_result(user_id, result_id, metrics)

    # ── Insights ─────────────────────────────────────────────────────────────

    async def generate_weekly(
        self,
        user_id: str,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        locale: str = "en",
    ) -> Optional[PerformanceInsight]:
        if not self.entitlements.weekly_insights_enabled(user_id):
            _log.info("weekly insights not included in the plan of %s", user_id)
            return None
        return await self.insights.generate_weekly(user_id, period_start, period_end, locale)
