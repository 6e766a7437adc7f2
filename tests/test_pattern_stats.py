"""Tests for pattern keys, shrunk scoring and the pattern stats engine."""
import pytest

from creator_lens.analyzers.pattern_stats import (
    PatternStatsEngine,
    parse_pattern_key,
    pattern_key,
    shrunk_score,
)
from creator_lens.errors import InvariantViolation, NotFoundError
from creator_lens.models import (
    CategoryGroup,
    ContentMetrics,
    ContentResult,
    GenerationRecord,
    Goal,
    Platform,
    Tone,
)

pytestmark = pytest.mark.asyncio


def _result(rate, *, tone=Tone.FUNNY, slug="lifestyle", views=1000, preview=None, **kwargs):
    return ContentResult(
        user_id="u1",
        platform=kwargs.pop("platform", Platform.TIKTOK),
        category_group=CategoryGroup.CREATOR,
        category_slug=slug,
        tone=tone,
        goal=Goal.VIEWS,
        content_preview=preview,
        metrics=ContentMetrics(views=views, engagement_rate=rate),
        **kwargs,
    )


# ── Keys and scoring ─────────────────────────────────────────────────────────

async def test_pattern_key_layout():
    assert pattern_key(Platform.TIKTOK, CategoryGroup.CREATOR, "lifestyle", Tone.FUNNY, Goal.VIEWS) == (
        "tiktok:creator:lifestyle:funny:views"
    )
    assert pattern_key(Platform.INSTAGRAM_REELS, tone=Tone.EDUCATIONAL) == "instagram_reels:any:any:educational:any"


async def test_parse_pattern_key():
    parts = parse_pattern_key("tiktok:creator:lifestyle:any:views")
    assert parts["platform"] is Platform.TIKTOK
    assert parts["category_slug"] == "lifestyle"
    assert parts["tone"] is None
    assert parts["goal"] is Goal.VIEWS
    with pytest.raises(InvariantViolation):
        parse_pattern_key("tiktok:creator")
    with pytest.raises(InvariantViolation):
        parse_pattern_key("myspace:any:any:any:any")


async def test_slug_with_delimiter():
    with pytest.raises(InvariantViolation):
        pattern_key(Platform.TIKTOK, category_slug="food:vegan", strict=True)
    assert pattern_key(Platform.TIKTOK, category_slug="food:vegan") == "tiktok:any:food-vegan:any:any"


async def test_shrinkage_single_outlier_scores_below_consistent_pattern():
    assert shrunk_score(90.0, 1, 5) < shrunk_score(70.0, 10, 5)


async def test_shrunk_score_never_drops_with_more_samples():
    scores = [shrunk_score(12.0, n, 5) for n in range(0, 12)]
    assert scores[0] == 0.0
    assert scores == sorted(scores)


# ── Engine ───────────────────────────────────────────────────────────────────

async def test_one_lucky_result_does_not_outrank_ten_good_ones(store):
    engine = PatternStatsEngine(store, strict=True)
    await engine.record_result(_result(90.0, slug="outlier"))
    for _ in range(10):
        await engine.record_result(_result(70.0, slug="steady"))
    top = await engine.top_patterns("u1", [Platform.TIKTOK], limit=2)
    assert [p.pattern_key for p in top] == [
        "tiktok:creator:steady:funny:views",
        "tiktok:creator:outlier:funny:views",
    ]


async def test_many_modest_results_beat_single_high_result(store):
    engine = PatternStatsEngine(store, strict=True)
    for _ in range(8):
        await engine.record_result(_result(8.0, tone=Tone.FUNNY))
    await engine.record_result(_result(20.0, tone=Tone.SERIOUS))
    top = await engine.top_patterns("u1", [Platform.TIKTOK], limit=1)
    assert top[0].pattern_key == "tiktok:creator:lifestyle:funny:views"
    assert top[0].weighted_score == pytest.approx(8.0)


async def test_recording_the_same_result_twice_is_idempotent(store):
    engine = PatternStatsEngine(store, strict=True)
    result = _result(10.0, preview="first")
    await engine.record_result(result)
    stats = await engine.record_result(result)
    assert stats.total_results == 1
    assert stats.avg_engagement_rate == pytest.approx(10.0)


async def test_stats_are_means_over_results(store):
    engine = PatternStatsEngine(store, strict=True)
    await engine.record_result(_result(4.0, views=1000, preview="meh"))
    stats = await engine.record_result(_result(8.0, views=3000, preview="best one"))
    assert stats.total_results == 2
    assert stats.avg_views == pytest.approx(2000)
    assert stats.avg_engagement_rate == pytest.approx(6.0)
    assert stats.weighted_score == pytest.approx(6.0 * 2 / 5)
    assert stats.best_performing_preview == "best one"


async def test_generation_without_results_is_never_ranked(store):
    engine = PatternStatsEngine(store, strict=True)
    record = GenerationRecord(user_id="u1", platform=Platform.TIKTOK, tone=Tone.SERIOUS)
    stats = await engine.record_generation(record)
    assert stats.total_generations == 1
    assert stats.total_results == 0
    assert stats.weighted_score == 0.0
    assert await engine.top_patterns("u1") == []


async def test_result_inherits_generation_parameters(store):
    engine = PatternStatsEngine(store, strict=True)
    record = GenerationRecord(
        user_id="u1",
        platform=Platform.YOUTUBE_SHORTS,
        category_group=CategoryGroup.BUSINESS,
        category_slug="saas",
        tone=Tone.EDUCATIONAL,
        goal=Goal.SALES,
    )
    await engine.record_generation(record)
    result = ContentResult(
        user_id="u1",
        platform=Platform.YOUTUBE_SHORTS,
        generation_id=record.id,
        metrics=ContentMetrics(views=500, likes=50),
    )
    stats = await engine.record_result(result)
    assert stats.pattern_key == "youtube_shorts:business:saas:educational:sales"
    assert stats.total_generations == 1
    assert stats.total_results == 1
    assert stats.avg_engagement_rate == pytest.approx(10.0)


async def test_update_result_recomputes_pattern(store):
    engine = PatternStatsEngine(store, strict=True)
    result = _result(None, views=100)
    result.metrics.likes = 5
    await engine.record_result(result)
    updated, stats = await engine.update_result("u1", result.id, ContentMetrics(views=100, likes=20))
    assert updated.engagement_rate == pytest.approx(20.0)
    assert stats.avg_engagement_rate == pytest.approx(20.0)
    assert stats.total_results == 1


async def test_update_unknown_result(store):
    engine = PatternStatsEngine(store, strict=True)
    with pytest.raises(NotFoundError):
        await engine.update_result("u1", "missing", ContentMetrics())


async def test_recalculate_rebuilds_every_pattern(store):
    engine = PatternStatsEngine(store, strict=True)
    await engine.record_result(_result(5.0, tone=Tone.FUNNY))
    await engine.record_result(_result(6.0, tone=Tone.SERIOUS))
    await engine.record_generation(GenerationRecord(user_id="u1", platform=Platform.INSTAGRAM_POST))
    rebuilt = await engine.recalculate("u1")
    assert len(rebuilt) == 3


async def test_performance_bias_needs_three_results(store):
    engine = PatternStatsEngine(store, strict=True)
    for _ in range(2):
        await engine.record_result(_result(8.0))
    args = ("u1", Platform.TIKTOK, CategoryGroup.CREATOR, "lifestyle", Tone.FUNNY, Goal.VIEWS)
    assert await engine.performance_bias(*args) is None

    await engine.record_result(_result(8.0, preview="Three habits that changed my mornings"))
    bias = await engine.performance_bias(*args)
    assert bias.pattern_key == "tiktok:creator:lifestyle:funny:views"
    assert "8.0% engagement" in bias.recommendation
    assert "Three habits" in bias.recommendation


async def test_performance_bias_falls_back_to_platform_best(store):
    engine = PatternStatsEngine(store, strict=True)
    for _ in range(3):
        await engine.record_result(_result(2.0, views=5000, slug="fitness"))
    bias = await engine.performance_bias("u1", Platform.TIKTOK, tone=Tone.SERIOUS, locale="tr")
    assert bias.pattern_key == "tiktok:creator:fitness:funny:views"
    assert "5000 izlenme" in bias.recommendation
    assert await engine.performance_bias("u1", Platform.INSTAGRAM_POST) is None
