"""Weekly performance rollups.

An insight covers one Monday..Sunday window and compares it with the seven
days before. Nothing is produced for a week with fewer than
``min_results_for_insights`` results. Once a later week has an insight, an
earlier week's insight is kept as the historical record and not recomputed.
"""
import asyncio
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional

from creator_lens.collaborators import ContentGenerator, SummaryRequest
from creator_lens.config import Tuning
from creator_lens.models import (
    AggregatedStats,
    BestPerformer,
    ContentResult,
    FormatType,
    InsightContent,
    InsightsAvailability,
    InsightsSummary,
    PerformanceInsight,
    PersonaProfile,
    Platform,
    PlatformComparison,
    Tone,
    WeekOverWeekChange,
)
from creator_lens.persona.model import dominant
from creator_lens.storage.store import SQLiteStore
from creator_lens.utils.periods import last_completed_week, previous_window
from creator_lens.utils.scoring import total_engagement

_log = logging.getLogger(__name__)

NEUTRAL_ALIGNMENT = 50
_WEIGHT_TIE = 1e-9

_PLATFORM_NAMES = {
    Platform.TIKTOK: "TikTok",
    Platform.INSTAGRAM_REELS: "Instagram Reels",
    Platform.INSTAGRAM_POST: "Instagram Post",
    Platform.YOUTUBE_SHORTS: "YouTube Shorts",
}

_TEXT = {
    "en": {
        "views_drop": "Your views dropped. Try focusing on more trending topics.",
        "views_surge": "Great performance! Keep this week's strategy going.",
        "best_format": "The {name} format performs best with {rate:.1f}% engagement. Use it more!",
        "best_tone": "A {name} tone resonates with your followers.",
        "best_platform": "{name} is giving you the best results. Be more active there!",
        "content_drop": "You posted less this week. Posting regularly matters for the algorithm!",
        "keep_going": "Keep collecting data; next week's analysis will be more detailed.",
        "fallback_summary": "You published {count} pieces of content this week and got {views:,} views in total.",
        "formats": {f: f.value.capitalize() for f in FormatType},
        "tones": {t: t.value.capitalize() for t in Tone},
    },
    "tr": {
        "views_drop": "Görüntüleme sayın düşüş gösterdi. Daha trend konulara odaklanmayı dene.",
        "views_surge": "Harika performans! Bu haftaki stratejini sürdür.",
        "best_format": "{name} formatı %{rate:.1f} etkileşim oranı ile en iyi performansı gösteriyor. Daha fazla kullan!",
        "best_tone": "{name} ton takipçilerinle rezonansa giriyor.",
        "best_platform": "{name} en iyi sonuçları veriyor. Orada daha aktif ol!",
        "content_drop": "Bu hafta daha az içerik paylaştın. Düzenli paylaşım algoritma için önemli!",
        "keep_going": "Verilerini toplamaya devam et, önümüzdeki hafta daha detaylı analizler sunacağız.",
        "fallback_summary": "Bu hafta {count} içerik paylaştın ve toplamda {views:,} görüntüleme aldın.",
        "formats": {
            FormatType.LISTICLE: "Liste",
            FormatType.STORY: "Hikaye",
            FormatType.TUTORIAL: "Eğitim",
            FormatType.REACTION: "Tepki",
            FormatType.COMPARISON: "Karşılaştırma",
        },
        "tones": {
            Tone.FUNNY: "Eğlenceli",
            Tone.SERIOUS: "Ciddi",
            Tone.EDUCATIONAL: "Eğitici",
            Tone.CONTROVERSIAL: "Tartışmalı",
            Tone.INSPIRATIONAL: "İlham verici",
        },
    },
}


def _text(locale: str) -> dict:
    return _TEXT.get(locale, _TEXT["en"])


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def aggregate_by(results: list[ContentResult], dimension: str) -> list[AggregatedStats]:
    """Group results on ``platform``, ``tone`` or ``format``; results without that tag are left out."""
    groups: dict = defaultdict(list)
    for r in results:
        value = getattr(r, dimension)
        if value is not None:
            groups[value].append(r)
    return [
        AggregatedStats(
            dimension=dimension,
            value=value.value,
            count=len(items),
            total_views=sum(i.metrics.views for i in items),
            avg_views=_mean([i.metrics.views for i in items]),
            total_engagement=sum(total_engagement(i.metrics) for i in items),
            avg_engagement_rate=_mean([i.engagement_rate for i in items]),
        )
        for value, items in groups.items()
    ]


def _percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def week_over_week(current: list[ContentResult], previous: list[ContentResult]) -> WeekOverWeekChange:
    return WeekOverWeekChange(
        views_change=_percent_change(
            sum(r.metrics.views for r in current), sum(r.metrics.views for r in previous)
        ),
        engagement_change=_percent_change(
            _mean([r.engagement_rate for r in current]), _mean([r.engagement_rate for r in previous])
        ),
        content_count_change=len(current) - len(previous),
    )


def _top(stats: list[AggregatedStats]) -> Optional[AggregatedStats]:
    # First group wins ties.
    best = None
    for s in stats:
        if best is None or s.avg_engagement_rate > best.avg_engagement_rate:
            best = s
    return best


def best_performer(stats: list[AggregatedStats], kind: str) -> Optional[BestPerformer]:
    best = _top(stats)
    if best is None:
        return None
    return BestPerformer(type=kind, value=best.value, avg_engagement=best.avg_engagement_rate, sample_count=best.count)


def platform_comparison(results: list[ContentResult]) -> list[PlatformComparison]:
    """Per-platform totals, each with the best tone and format seen on that platform."""
    comparison = []
    for stat in aggregate_by(results, "platform"):
        platform = Platform(stat.value)
        on_platform = [r for r in results if r.platform is platform]
        best_tone = _top(aggregate_by(on_platform, "tone"))
        best_format = _top(aggregate_by(on_platform, "format"))
        comparison.append(
            PlatformComparison(
                platform=platform,
                total_content=stat.count,
                avg_views=stat.avg_views,
                avg_engagement_rate=stat.avg_engagement_rate,
                best_tone=Tone(best_tone.value) if best_tone else None,
                best_format=FormatType(best_format.value) if best_format else None,
            )
        )
    return comparison


def persona_alignment(profile: Optional[PersonaProfile], results: list[ContentResult]) -> int:
    """Engagement-weighted share (0-100) of results that used the persona's dominant tone.

    Neutral 50 when there is no persona, no tagged result, no engagement to
    weigh by, or no single tone that outweighs all the others.
    """
    if profile is None:
        return NEUTRAL_ALIGNMENT
    tagged = [r for r in results if r.tone is not None]
    total = sum(r.engagement_rate for r in tagged)
    if not tagged or total <= 0:
        return NEUTRAL_ALIGNMENT
    tone = dominant(profile.tone_weights, Tone)
    top = profile.tone_weights.get(tone, 0.0)
    if any(profile.tone_weights.get(t, 0.0) >= top - _WEIGHT_TIE for t in Tone if t is not tone):
        return NEUTRAL_ALIGNMENT
    aligned = sum(r.engagement_rate for r in tagged if r.tone is tone)
    return min(100, max(0, round(aligned / total * 100)))


def recommendations(
    change: WeekOverWeekChange,
    best_format: Optional[BestPerformer],
    best_tone: Optional[BestPerformer],
    best_platform: Optional[Platform],
    comparison: list[PlatformComparison],
    locale: str = "en",
    tuning: Optional[Tuning] = None,
) -> list[str]:
    tuning = tuning or Tuning()
    text = _text(locale)
    recs = []
    if change.views_change < tuning.views_drop_threshold:
        recs.append(text["views_drop"])
    elif change.views_change > tuning.views_surge_threshold:
        recs.append(text["views_surge"])
    if best_format and best_format.sample_count >= tuning.min_best_samples:
        name = text["formats"][FormatType(best_format.value)]
        recs.append(text["best_format"].format(name=name, rate=best_format.avg_engagement))
    if best_tone and best_tone.sample_count >= tuning.min_best_samples:
        recs.append(text["best_tone"].format(name=text["tones"][Tone(best_tone.value)]))
    if best_platform and len(comparison) > 1:
        recs.append(text["best_platform"].format(name=_PLATFORM_NAMES[best_platform]))
    if change.content_count_change < tuning.content_drop_threshold:
        recs.append(text["content_drop"])
    if not recs:
        recs.append(text["keep_going"])
    return recs[: tuning.max_recommendations]


def fallback_summary(total_content: int, total_views: int, locale: str = "en") -> str:
    return _text(locale)["fallback_summary"].format(count=total_content, views=total_views)


class InsightsAggregator:
    def __init__(
        self,
        store: SQLiteStore,
        generator: Optional[ContentGenerator] = None,
        tuning: Optional[Tuning] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.tuning = tuning or Tuning()

    async def _summary(self, request: SummaryRequest) -> str:
        fallback = fallback_summary(request.total_content, request.total_views, request.locale)
        if self.generator is None:
            return fallback
        try:
            text = await asyncio.to_thread(self.generator.generate_summary, request)
        except Exception as exc:
            _log.warning("summary generation failed for %s: %s", request.user_id, exc)
            return fallback
        return text.strip() if text and text.strip() else fallback

    async def generate_weekly(
        self,
        user_id: str,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        locale: str = "en",
    ) -> Optional[PerformanceInsight]:
        """Build and store the insight for one week; ``None`` when the week has too few results.

        Defaults to the last fully completed Monday..Sunday week.
        """
        if period_start is None:
            period_start, default_end = last_completed_week()
            period_end = period_end or default_end
        period_end = period_end or period_start + timedelta(days=6)

        existing = await self.store.get_insight(user_id, period_start)
        if existing is not None:
            latest = await self.store.latest_insight(user_id)
            if latest is not None and latest.period_start > period_start:
                _log.info("insight for %s week %s is superseded, not recomputing", user_id, period_start)
                return existing

        results = await self.store.results_between(user_id, period_start, period_end)
        if len(results) < self.tuning.min_results_for_insights:
            _log.info(
                "not enough results for insights (%s, %s): %d < %d",
                user_id, period_start, len(results), self.tuning.min_results_for_insights,
            )
            return None
        previous = await self.store.results_between(user_id, *previous_window(period_start))

        by_platform = aggregate_by(results, "platform")
        best_format = best_performer(aggregate_by(results, "format"), "format")
        best_tone = best_performer(aggregate_by(results, "tone"), "tone")
        top_platform = _top(by_platform)
        best_platform = Platform(top_platform.value) if top_platform else None
        change = week_over_week(results, previous)
        comparison = platform_comparison(results)
        recs = recommendations(change, best_format, best_tone, best_platform, comparison, locale, self.tuning)

        total_views = sum(r.metrics.views for r in results)
        avg_rate = _mean([r.engagement_rate for r in results])
        top_content = max(results, key=lambda r: r.engagement_rate)
        profile = await self.store.get_persona(user_id)

        summary = await self._summary(
            SummaryRequest(
                user_id=user_id,
                locale=locale,
                total_content=len(results),
                total_views=total_views,
                avg_engagement_rate=avg_rate,
                views_change=change.views_change,
                best_tone=best_tone.value if best_tone else None,
                best_format=best_format.value if best_format else None,
                best_platform=best_platform.value if best_platform else None,
                recommendations=recs,
            )
        )
        content = InsightContent(
            summary=summary,
            best_format=best_format,
            best_tone=best_tone,
            best_goal=top_content.goal,
            best_platform=best_platform,
            platform_comparison=comparison,
            week_over_week=change,
            recommendations=recs,
            persona_alignment_score=persona_alignment(profile, results),
            total_content=len(results),
            total_views=total_views,
            total_engagement=sum(total_engagement(r.metrics) for r in results),
            avg_engagement_rate=avg_rate,
            top_performing_content=top_content.content_preview or top_content.content_type,
        )
        insight = await self.store.upsert_insight(
            PerformanceInsight(user_id=user_id, period_start=period_start, period_end=period_end, content=content)
        )
        _log.info("stored insight for %s week %s (%d results)", user_id, period_start, len(results))
        return insight

    async def latest(self, user_id: str) -> Optional[PerformanceInsight]:
        return await self.store.latest_insight(user_id)

    async def data_availability(self, user_id: str, today: Optional[date] = None) -> InsightsAvailability:
        start, end = last_completed_week(today)
        count = len(await self.store.results_between(user_id, start, end))
        minimum = self.tuning.min_results_for_insights
        return InsightsAvailability(has_data=count >= minimum, count=count, minimum=minimum)

    async def dashboard_summary(self, user_id: str) -> InsightsSummary:
        insight = await self.store.latest_insight(user_id)
        if insight is None:
            return InsightsSummary(has_insights=False)
        c = insight.content
        return InsightsSummary(
            has_insights=True,
            period_start=insight.period_start,
            period_end=insight.period_end,
            total_content=c.total_content,
            total_views=c.total_views,
            avg_engagement=c.avg_engagement_rate,
            views_change=c.week_over_week.views_change,
            engagement_change=c.week_over_week.engagement_change,
            best_platform=c.best_platform,
            best_tone=c.best_tone.value if c.best_tone else None,
            top_recommendation=c.recommendations[0] if c.recommendations else None,
        )
