"""Per-pattern performance statistics.

A pattern is the combination of prompt parameters a piece of content was
generated with (platform, category group, category slug, tone, goal). The
key joins them with ``:`` and uses ``any`` for anything left unset:

    tiktok:creator:lifestyle:funny:views
    instagram_reels:any:any:educational:any

Stats are always recomputed in full from the stored results of a key, so
recording the same result twice changes nothing. Ranking uses a shrunk
score: the average engagement rate is scaled down until the pattern has
``confidence_k`` results behind it, so one lucky post cannot outrank a
consistently good pattern.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from creator_lens.config import Tuning
from creator_lens.errors import InvariantViolation, NotFoundError, report_invariant
from creator_lens.models import (
    CategoryGroup,
    ContentMetrics,
    ContentResult,
    GenerationRecord,
    Goal,
    PatternStats,
    PerformanceBias,
    Platform,
    Tone,
    utc_now,
)
from creator_lens.storage.store import SQLiteStore
from creator_lens.utils.scoring import engagement_rate, performance_score

_log = logging.getLogger(__name__)

ANY = "any"
KEY_DELIMITER = ":"
_KEY_PARTS = 5

_BIAS_TEXT = {
    "en": {
        "engagement": "This creator averages {rate:.1f}% engagement on {platform}. Use the content style that performs best.",
        "views": "This creator averages {views} views on {platform}. Use more attention-grabbing hooks.",
        "example": ' Best performing example: "{preview}..."',
    },
    "tr": {
        "engagement": "Bu kullanıcının {platform} platformunda ortalama %{rate:.1f} etkileşim oranı var. En iyi performans gösteren içerik tarzını kullan.",
        "views": "Bu kullanıcı {platform} platformunda ortalama {views} izlenme alıyor. Daha dikkat çekici hook'lar kullan.",
        "example": ' En başarılı içerik örneği: "{preview}..."',
    },
}


def _slug_component(slug: Optional[str], strict: bool) -> str:
    if slug is None or not slug.strip():
        return ANY
    cleaned = slug.strip().lower()
    if KEY_DELIMITER in cleaned:
        report_invariant(f"category slug {slug!r} contains the key delimiter", strict=strict)
        cleaned = cleaned.replace(KEY_DELIMITER, "-")
    return cleaned


def pattern_key(
    platform: Platform,
    category_group: Optional[CategoryGroup] = None,
    category_slug: Optional[str] = None,
    tone: Optional[Tone] = None,
    goal: Optional[Goal] = None,
    *,
    strict: bool = False,
) -> str:
    parts = [
        Platform(platform).value,
        CategoryGroup(category_group).value if category_group else ANY,
        _slug_component(category_slug, strict),
        Tone(tone).value if tone else ANY,
        Goal(goal).value if goal else ANY,
    ]
    return KEY_DELIMITER.join(parts)


def parse_pattern_key(key: str) -> dict:
    """Inverse of ``pattern_key``; ``any`` components come back as ``None``."""
    parts = key.split(KEY_DELIMITER)
    if len(parts) != _KEY_PARTS:
        raise InvariantViolation(f"malformed pattern key {key!r}")
    platform, group, slug, tone, goal = (None if p == ANY else p for p in parts)
    try:
        return {
            "platform": Platform(platform),
            "category_group": CategoryGroup(group) if group else None,
            "category_slug": slug,
            "tone": Tone(tone) if tone else None,
            "goal": Goal(goal) if goal else None,
        }
    except ValueError as exc:
        raise InvariantViolation(f"pattern key {key!r} is outside the key space: {exc}") from exc


def shrunk_score(avg_engagement_rate: float, total_results: int, confidence_k: float) -> float:
    if total_results <= 0:
        return 0.0
    return avg_engagement_rate * min(1.0, total_results / confidence_k)


def aggregate(
    user_id: str,
    key: str,
    results: list[ContentResult],
    total_generations: int = 0,
    confidence_k: float = 5.0,
) -> PatternStats:
    parts = parse_pattern_key(key)
    n = len(results)
    avg_views = sum(r.metrics.views for r in results) / n if n else 0.0
    avg_er = sum(r.engagement_rate for r in results) / n if n else 0.0
    best = max(results, key=lambda r: r.engagement_rate, default=None)
    return PatternStats(
        user_id=user_id,
        pattern_key=key,
        total_generations=total_generations,
        total_results=n,
        avg_views=avg_views,
        avg_engagement_rate=avg_er,
        weighted_score=shrunk_score(avg_er, n, confidence_k),
        best_performing_preview=best.content_preview if best else None,
        last_calculated_at=utc_now(),
        **parts,
    )


def _bias_recommendation(stats: PatternStats, locale: str) -> str:
    text = _BIAS_TEXT.get(locale, _BIAS_TEXT["en"])
    platform = stats.platform.value
    recommendation = ""
    if stats.avg_engagement_rate > 5:
        recommendation = text["engagement"].format(rate=stats.avg_engagement_rate, platform=platform)
    elif stats.avg_views > 1000:
        recommendation = text["views"].format(views=round(stats.avg_views), platform=platform)
    if stats.best_performing_preview:
        recommendation += text["example"].format(preview=stats.best_performing_preview[:100])
    return recommendation.strip()


class PatternStatsEngine:
    def __init__(self, store: SQLiteStore, tuning: Optional[Tuning] = None, *, strict: bool = False) -> None:
        self.store = store
        self.tuning = tuning or Tuning()
        self.strict = strict

    def key_for(self, record: GenerationRecord | ContentResult) -> str:
        return pattern_key(
            record.platform,
            record.category_group,
            record.category_slug,
            record.tone,
            record.goal,
            strict=self.strict,
        )

    async def _recompute(self, user_id: str, key: str) -> PatternStats:
        results = await self.store.results_for_pattern(user_id, key)
        generations = await self.store.count_generations(user_id, key)
        stats = aggregate(user_id, key, results, generations, self.tuning.confidence_k)
        await self.store.upsert_pattern(stats)
        return stats

    async def record_generation(self, record: GenerationRecord) -> PatternStats:
        key = self.key_for(record)
        if not await self.store.insert_generation(record, key):
            _log.info("generation %s already recorded", record.id)
        return await self._recompute(record.user_id, key)

    async def enrich(self, result: ContentResult) -> ContentResult:
        """Fill rates, score and pattern key; unset prompt parameters are
        inherited from the linked generation when there is one."""
        updates: dict = {}
        if result.generation_id:
            generation = await self.store.get_generation(result.user_id, result.generation_id)
            if generation is not None:
                for field in ("category_group", "category_slug", "tone", "goal", "format", "opening_type"):
                    if getattr(result, field) is None and getattr(generation, field) is not None:
                        updates[field] = getattr(generation, field)
        enriched = result.model_copy(update=updates)
        enriched.engagement_rate = engagement_rate(enriched.metrics)
        enriched.performance_score = performance_score(enriched.metrics)
        enriched.pattern_key = self.key_for(enriched)
        return enriched

    async def record_result(self, result: ContentResult) -> PatternStats:
        return await self.record_enriched(await self.enrich(result))

    async def record_enriched(self, enriched: ContentResult) -> PatternStats:
        """Store a result that has already been through ``enrich`` and refresh its pattern."""
        if not await self.store.insert_result(enriched):
            _log.info("result %s already recorded, recomputing %s", enriched.id, enriched.pattern_key)
        return await self._recompute(enriched.user_id, enriched.pattern_key)

    async def update_result(
        self,
        user_id: str,
        result_id: str,
        metrics: ContentMetrics,
        posted_at: Optional[datetime] = None,
    ) -> tuple[ContentResult, PatternStats]:
        existing = await self.store.get_result(user_id, result_id)
        if existing is None:
            raise NotFoundError(f"result {result_id} not found for user {user_id}")
        changed = existing.model_copy(update={"metrics": metrics, "posted_at": posted_at or existing.posted_at})
        changed.engagement_rate = engagement_rate(metrics)
        changed.performance_score = performance_score(metrics)
        await self.store.replace_result(changed)
        return changed, await self._recompute(user_id, changed.pattern_key)

    async def recalculate(self, user_id: str) -> list[PatternStats]:
        """Recompute every pattern the user has history for."""
        return [await self._recompute(user_id, key) for key in await self.store.pattern_keys(user_id)]

    async def top_patterns(
        self,
        user_id: str,
        platforms: Optional[Iterable[Platform]] = None,
        limit: int = 10,
    ) -> list[PatternStats]:
        return await self.store.top_patterns(user_id, platforms, limit=limit, min_results=1)

    async def performance_bias(
        self,
        user_id: str,
        platform: Platform,
        category_group: Optional[CategoryGroup] = None,
        category_slug: Optional[str] = None,
        tone: Optional[Tone] = None,
        goal: Optional[Goal] = None,
        locale: str = "en",
    ) -> Optional[PerformanceBias]:
        """Exact-pattern stats, else the best pattern on the platform; ``None`` without enough results."""
        key = pattern_key(platform, category_group, category_slug, tone, goal, strict=self.strict)
        stats = await self.store.get_pattern(user_id, key)
        if stats is None or stats.total_results < self.tuning.min_bias_results:
            best = await self.store.top_patterns(
                user_id, [platform], limit=1, min_results=self.tuning.min_bias_results
            )
            stats = best[0] if best else None
        if stats is None:
            return None
        return PerformanceBias(
            pattern_key=stats.pattern_key,
            platform=stats.platform,
            tone=stats.tone,
            goal=stats.goal,
            weighted_score=stats.weighted_score,
            avg_engagement_rate=stats.avg_engagement_rate,
            avg_views=stats.avg_views,
            best_performing_preview=stats.best_performing_preview,
            recommendation=_bias_recommendation(stats, locale),
        )
