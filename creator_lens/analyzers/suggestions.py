"""Daily content suggestions: exploit the user's best patterns, explore new ones.

A batch of ``count`` ideas is split with the exploration share rounded up
(10 ideas at 0.3 gives 3 explorations and 7 exploitations). Exploitation
ideas come from the highest-ranked patterns; exploration ideas are
(platform, tone, format) combinations the user has no history with at all.
When there are fewer ranked patterns than exploitation slots, the spare
slots go to exploration.

Every candidate costs exactly one generator call. A call that fails or comes
back empty drops that candidate and the rest of the batch carries on.
"""
import asyncio
import logging
import math
import random
from datetime import date
from typing import Iterable, Optional

import aiosqlite
from pydantic import BaseModel

from creator_lens.analyzers.pattern_stats import PatternStatsEngine, parse_pattern_key, pattern_key
from creator_lens.collaborators import ContentGenerator, EntitlementProvider, HookRequest
from creator_lens.config import Tuning
from creator_lens.errors import NotFoundError, SuggestionLimitExceeded
from creator_lens.models import (
    DailySuggestion,
    FormatType,
    PatternStats,
    PersonaOverlay,
    Platform,
    SuggestionAllowance,
    SuggestionBatch,
    SuggestionContent,
    SuggestionStats,
    Tone,
    utc_now,
)
from creator_lens.persona.service import PersonaService
from creator_lens.storage.store import SQLiteStore

_log = logging.getLogger(__name__)

DEFAULT_PLATFORMS = [Platform.TIKTOK, Platform.INSTAGRAM_REELS]

CTA_TEMPLATES: dict[str, dict[Tone, list[str]]] = {
    "en": {
        Tone.FUNNY: [
            "Follow for more laughs!",
            "Like it and maybe I'll make you laugh again!",
            "Comment below: got a funnier idea?",
        ],
        Tone.SERIOUS: [
            "Follow for more.",
            "What do you think about this?",
            "Save it, you'll need it.",
        ],
        Tone.EDUCATIONAL: [
            "Save this and come back to it later!",
            "Send it to a friend who should learn this!",
            "Follow for something new every day!",
        ],
        Tone.CONTROVERSIAL: [
            "Agree or disagree? Comment below!",
            "Join the debate!",
            "What's your take?",
        ],
        Tone.INSPIRATIONAL: [
            "Take action today!",
            "You can do it too, follow along!",
            "Stay tuned for daily motivation!",
        ],
    },
    "tr": {
        Tone.FUNNY: [
            "Takip et, daha fazla güleceksin!",
            "Like at, belki bir daha güldürürüm!",
            "Yorum yap, senin de komik fikirlerin var mı?",
        ],
        Tone.SERIOUS: [
            "Daha fazlası için takip et.",
            "Bu konuda ne düşünüyorsun?",
            "Kaydet, lazım olur.",
        ],
        Tone.EDUCATIONAL: [
            "Kaydet, sonra tekrar bak!",
            "Arkadaşlarına gönder, onlar da öğrensin!",
            "Takip et, her gün yeni bilgi!",
        ],
        Tone.CONTROVERSIAL: [
            "Katılıyor musun? Yorum yap!",
            "Tartışmaya katıl!",
            "Senin fikrin ne?",
        ],
        Tone.INSPIRATIONAL: [
            "Bugün harekete geç!",
            "Sen de yapabilirsin, takip et!",
            "Motivasyon için takipte kal!",
        ],
    },
}

_REASONS = {
    "en": {
        "exploit": "Your {tone} content performs best, averaging {rate:.1f}% engagement.",
        "explore": "Trying a new {tone} style to see how your audience reacts!",
        "limit": "Daily suggestion limit reached ({limit})",
    },
    "tr": {
        "exploit": "{tone} tonun %{rate:.1f} etkileşim oranı ile en iyi performansı gösteriyor.",
        "explore": "Yeni bir {tone} tarzı deniyoruz!",
        "limit": "Bugün için öneri limitine ulaştınız ({limit})",
    },
}


class Candidate(BaseModel):
    platform: Platform
    tone: Tone
    format: FormatType
    pattern_key: str
    is_exploration: bool
    weighted_score: float = 0.0
    avg_engagement_rate: float = 0.0
    best_performing_preview: Optional[str] = None


def split_counts(count: int, explore_ratio: float) -> tuple[int, int]:
    """Return ``(exploit, explore)``. Rounding noise such as 10 * 0.3 == 3.0000000000000004
    is removed before taking the ceiling."""
    if count <= 0:
        return 0, 0
    explore = min(count, math.ceil(round(count * explore_ratio, 9)))
    return count - explore, explore


def select_exploration(
    platforms: list[Platform],
    history: Iterable[PatternStats],
    target: int,
    rng: random.Random,
    exclude: Iterable[str] = (),
) -> list[Candidate]:
    """Sample up to ``target`` untried (platform, tone) pairs, each with a random format.

    A pair is tried when any pattern in the user's history shares its
    platform and tone. Sampling is without replacement from the eligible
    pairs, so it never needs more than ``target`` draws.
    """
    if target <= 0:
        return []
    history = list(history)
    tried = {(s.platform, s.tone) for s in history if s.tone is not None}
    taken = {s.pattern_key for s in history} | set(exclude)
    eligible = []
    for platform in platforms:
        for tone in Tone:
            key = pattern_key(platform, tone=tone)
            if (platform, tone) in tried or key in taken:
                continue
            eligible.append((platform, tone, key))
    picks = rng.sample(eligible, min(target, len(eligible)))
    return [
        Candidate(
            platform=platform,
            tone=tone,
            format=rng.choice(list(FormatType)),
            pattern_key=key,
            is_exploration=True,
        )
        for platform, tone, key in picks
    ]


def plan_candidates(
    top: list[PatternStats],
    history: list[PatternStats],
    overlay: PersonaOverlay,
    platforms: list[Platform],
    count: int,
    explore_ratio: float,
    rng: random.Random,
) -> list[Candidate]:
    exploit_target, explore_target = split_counts(count, explore_ratio)
    exploit = [
        Candidate(
            platform=stats.platform,
            tone=stats.tone or overlay.tone_preference,
            format=overlay.format_preference,
            pattern_key=stats.pattern_key,
            is_exploration=False,
            weighted_score=stats.weighted_score,
            avg_engagement_rate=stats.avg_engagement_rate,
            best_performing_preview=stats.best_performing_preview,
        )
        for stats in top
        if stats.total_results >= 1
    ][:exploit_target]
    explore_target += exploit_target - len(exploit)
    used = [c.pattern_key for c in exploit]
    return exploit + select_exploration(platforms, history, explore_target, rng, used)


class SuggestionGenerator:
    def __init__(
        self,
        store: SQLiteStore,
        patterns: PatternStatsEngine,
        personas: PersonaService,
        generator: ContentGenerator,
        entitlements: EntitlementProvider,
        tuning: Optional[Tuning] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.patterns = patterns
        self.personas = personas
        self.generator = generator
        self.entitlements = entitlements
        self.tuning = tuning or Tuning()
        self.rng = rng or random.Random()

    async def can_generate(self, user_id: str, day: Optional[date] = None, locale: str = "en") -> SuggestionAllowance:
        day = day or utc_now().date()
        existing = len(await self.store.suggestions_for_day(user_id, day))
        limit = self.entitlements.daily_suggestion_limit(user_id)
        if existing >= limit:
            reason = _REASONS.get(locale, _REASONS["en"])["limit"].format(limit=limit)
            return SuggestionAllowance(can_generate=False, existing_count=existing, limit=limit, reason=reason)
        return SuggestionAllowance(can_generate=True, existing_count=existing, limit=limit)

    async def generate_daily(
        self,
        user_id: str,
        platforms: Optional[list[Platform]] = None,
        count: Optional[int] = None,
        explore_ratio: Optional[float] = None,
        *,
        locale: str = "en",
        day: Optional[date] = None,
        regenerate: bool = False,
    ) -> SuggestionBatch:
        """Generate and store today's ideas for ``user_id``.

        Raises ``SuggestionLimitExceeded`` when ``count`` is above the user's
        daily limit, or when the limit is already used up for the day and
        ``regenerate`` is not set. Rows are keyed by (user, day, platform), so
        a repeat call overwrites instead of adding rows.
        """
        day = day or utc_now().date()
        platforms = list(dict.fromkeys(platforms or DEFAULT_PLATFORMS))
        ratio = self.tuning.explore_ratio if explore_ratio is None else explore_ratio
        limit = self.entitlements.daily_suggestion_limit(user_id)
        count = limit if count is None else count
        existing = len(await self.store.suggestions_for_day(user_id, day))
        if count > limit or (existing >= limit and not regenerate):
            raise SuggestionLimitExceeded(limit, count, existing)

        overlay = await self.personas.overlay_for(user_id, self.entitlements.personalization_enabled(user_id))
        top = await self.patterns.top_patterns(user_id, platforms, limit=self.tuning.top_pattern_pool)
        history = await self.store.list_patterns(user_id)
        candidates = plan_candidates(top, history, overlay, platforms, count, ratio, self.rng)

        batch = SuggestionBatch(limit=limit)
        for candidate in candidates:
            suggestion = await self._realize(user_id, candidate, overlay, day, locale)
            if suggestion is None:
                batch.failed += 1
                continue
            batch.suggestions.append(suggestion)
            batch.patterns_used.append(candidate.pattern_key)
            if candidate.is_exploration:
                batch.exploration_count += 1
            else:
                batch.exploitation_count += 1
        _log.info(
            "suggestions for %s on %s: %d exploit, %d explore, %d failed",
            user_id, day, batch.exploitation_count, batch.exploration_count, batch.failed,
        )
        return batch

    async def _realize(
        self,
        user_id: str,
        candidate: Candidate,
        overlay: PersonaOverlay,
        day: date,
        locale: str,
    ) -> Optional[DailySuggestion]:
        request = HookRequest(
            user_id=user_id,
            platform=candidate.platform,
            tone=candidate.tone,
            format=candidate.format,
            cta_style=overlay.cta_style,
            target_hook_length=overlay.target_hook_length,
            niche=parse_pattern_key(candidate.pattern_key)["category_slug"],
            locale=locale,
            is_exploration=candidate.is_exploration,
            overlay=overlay,
            pattern_key=candidate.pattern_key,
            reference_preview=candidate.best_performing_preview,
            avg_engagement_rate=None if candidate.is_exploration else candidate.avg_engagement_rate,
        )
        try:
            hook = await asyncio.to_thread(self.generator.generate_hook, request)
        except Exception as exc:
            _log.warning("hook generation failed for %s (%s): %s", user_id, candidate.pattern_key, exc)
            return None
        if not hook or not hook.strip():
            _log.warning("empty hook for %s (%s), skipping", user_id, candidate.pattern_key)
            return None

        templates = CTA_TEMPLATES.get(locale, CTA_TEMPLATES["en"])
        reasons = _REASONS.get(locale, _REASONS["en"])
        if candidate.is_exploration:
            reason = reasons["explore"].format(tone=candidate.tone.value)
            confidence = self.tuning.exploration_confidence
        else:
            reason = reasons["exploit"].format(tone=candidate.tone.value, rate=candidate.avg_engagement_rate)
            confidence = candidate.weighted_score * self.tuning.confidence_scale
        content = SuggestionContent(
            hook_idea=hook.strip(),
            format=candidate.format,
            tone=candidate.tone,
            cta=self.rng.choice(templates[candidate.tone]),
            reason=reason,
            pattern_key=candidate.pattern_key,
            is_exploration=candidate.is_exploration,
            avg_engagement=None if candidate.is_exploration else candidate.avg_engagement_rate,
            confidence_score=min(100.0, max(0.0, confidence)),
        )
        row = DailySuggestion(user_id=user_id, suggestion_date=day, platform=candidate.platform, content=content)
        try:
            return await self.store.upsert_suggestion(row)
        except aiosqlite.Error as exc:
            _log.warning("could not store suggestion for %s (%s): %s", user_id, candidate.pattern_key, exc)
            return None

    async def todays(self, user_id: str, day: Optional[date] = None) -> list[DailySuggestion]:
        return await self.store.suggestions_for_day(user_id, day or utc_now().date())

    async def mark_used(self, user_id: str, suggestion_id: str, generation_id: Optional[str] = None) -> DailySuggestion:
        suggestion = await self.store.mark_suggestion_used(user_id, suggestion_id, utc_now(), generation_id)
        if suggestion is None:
            raise NotFoundError(f"suggestion {suggestion_id} not found for user {user_id}")
        return suggestion

    async def stats(self, user_id: str) -> SuggestionStats:
        suggestions = await self.store.list_suggestions(user_id)
        used = [s for s in suggestions if s.used]
        counts: dict[str, int] = {}
        for s in used:
            if s.content.pattern_key:
                counts[s.content.pattern_key] = counts.get(s.content.pattern_key, 0) + 1
        top = sorted(counts, key=lambda k: (-counts[k], k))[:3]
        return SuggestionStats(
            total_suggestions=len(suggestions),
            used_suggestions=len(used),
            usage_rate=len(used) / len(suggestions) * 100 if suggestions else 0.0,
            top_patterns=top,
        )
