"""Tests for daily suggestions: exploit/explore split, limits and partial failures."""
import random
from datetime import date

import pytest

from creator_lens.analyzers.suggestions import CTA_TEMPLATES, select_exploration, split_counts
from creator_lens.errors import NotFoundError, SuggestionLimitExceeded
from creator_lens.models import (
    CategoryGroup,
    ContentMetrics,
    ContentResult,
    FormatType,
    OnboardingAnswers,
    PatternStats,
    Platform,
    Tone,
)

from conftest import FakeGenerator

DAY = date(2024, 3, 1)


@pytest.mark.parametrize(
    "count, ratio, expected",
    [(10, 0.3, (7, 3)), (3, 0.3, (2, 1)), (1, 0.3, (0, 1)), (5, 0.0, (5, 0)), (4, 1.0, (0, 4)), (0, 0.3, (0, 0))],
)
def test_split_counts(count, ratio, expected):
    assert split_counts(count, ratio) == expected


def _history(*pairs):
    return [
        PatternStats(user_id="u", pattern_key=f"{p.value}:any:any:{t.value}:any", platform=p, tone=t, total_results=1)
        for p, t in pairs
    ]


def test_exploration_skips_tried_platform_tone_pairs():
    history = _history((Platform.TIKTOK, Tone.FUNNY), (Platform.TIKTOK, Tone.SERIOUS))
    picks = select_exploration([Platform.TIKTOK], history, 10, random.Random(1))
    assert {c.tone for c in picks} == {Tone.EDUCATIONAL, Tone.CONTROVERSIAL, Tone.INSPIRATIONAL}
    assert all(c.is_exploration for c in picks)
    assert all(c.pattern_key == f"tiktok:any:any:{c.tone.value}:any" for c in picks)


def test_exploration_is_bounded_and_seeded():
    first = select_exploration([Platform.TIKTOK, Platform.YOUTUBE_SHORTS], [], 4, random.Random(7))
    second = select_exploration([Platform.TIKTOK, Platform.YOUTUBE_SHORTS], [], 4, random.Random(7))
    assert len(first) == 4
    assert len({c.pattern_key for c in first}) == 4
    assert first == second


def test_exploration_with_nothing_left_to_try():
    history = _history(*[(Platform.TIKTOK, t) for t in Tone])
    assert select_exploration([Platform.TIKTOK], history, 3, random.Random(0)) == []


async def _seed_patterns(lens, user_id, n=7, rate=10.0):
    for i in range(n):
        await lens.patterns.record_result(
            ContentResult(
                user_id=user_id,
                platform=Platform.TIKTOK,
                category_group=CategoryGroup.CREATOR,
                category_slug=f"slug{i}",
                tone=Tone.FUNNY,
                metrics=ContentMetrics(views=1000, engagement_rate=rate + i),
            )
        )


@pytest.mark.asyncio
async def test_batch_splits_exploit_and_explore(lens):
    await _seed_patterns(lens, "sug-split")
    batch = await lens.suggestions.generate_daily("sug-split", day=DAY)

    assert batch.limit == 10
    assert batch.exploitation_count == 7
    assert batch.exploration_count == 3
    assert batch.failed == 0
    assert len(batch.suggestions) == 10
    exploit = [s for s in batch.suggestions if not s.content.is_exploration]
    explore = [s for s in batch.suggestions if s.content.is_exploration]
    assert {s.content.pattern_key for s in exploit} == {
        f"tiktok:creator:slug{i}:funny:any" for i in range(7)
    }
    assert all(s.content.format is FormatType.LISTICLE for s in exploit)
    assert all(s.content.tone is Tone.FUNNY for s in exploit)
    for s in explore:
        assert (s.platform, s.content.tone) != (Platform.TIKTOK, Tone.FUNNY)
        assert s.content.confidence_score == 50
        assert s.content.avg_engagement is None
    assert len(lens.generator.hook_requests) == 10


@pytest.mark.asyncio
async def test_exploit_confidence_and_reason(lens):
    await _seed_patterns(lens, "sug-conf", n=1, rate=10.0)
    batch = await lens.suggestions.generate_daily("sug-conf", count=1, explore_ratio=0.0, day=DAY)
    content = batch.suggestions[0].content
    # one result at 10% shrinks to 2.0, scaled by 10
    assert content.confidence_score == pytest.approx(20.0)
    assert content.avg_engagement == pytest.approx(10.0)
    assert content.reason == "Your funny content performs best, averaging 10.0% engagement."
    assert content.cta in CTA_TEMPLATES["en"][Tone.FUNNY]


@pytest.mark.asyncio
async def test_no_history_backfills_with_exploration(lens):
    batch = await lens.suggestions.generate_daily("sug-cold", day=DAY)
    assert batch.exploitation_count == 0
    assert batch.exploration_count == 10
    assert len({s.content.pattern_key for s in batch.suggestions}) == 10


@pytest.mark.asyncio
async def test_repeat_runs_overwrite_rows_per_platform(lens):
    await _seed_patterns(lens, "sug-repeat")
    await lens.suggestions.generate_daily("sug-repeat", day=DAY)
    first = await lens.suggestions.todays("sug-repeat", DAY)
    await lens.suggestions.generate_daily("sug-repeat", day=DAY)
    rows = await lens.suggestions.todays("sug-repeat", DAY)
    assert len(rows) == len({r.platform for r in rows}) <= 2
    assert {r.id for r in first} <= {r.id for r in rows}


@pytest.mark.asyncio
async def test_failed_candidates_are_skipped(lens):
    lens.suggestions.generator = FakeGenerator(fail_on={2}, raise_on={3})
    batch = await lens.suggestions.generate_daily("sug-fail", count=5, day=DAY)
    assert batch.failed == 2
    assert len(batch.suggestions) == 3
    assert batch.exploitation_count + batch.exploration_count == 3


@pytest.mark.asyncio
async def test_daily_limit(lens, entitlements):
    entitlements.limit = 1
    allowance = await lens.suggestions.can_generate("sug-limit", DAY)
    assert allowance.can_generate is True
    assert allowance.limit == 1

    batch = await lens.suggestions.generate_daily("sug-limit", day=DAY)
    assert len(batch.suggestions) == 1

    allowance = await lens.suggestions.can_generate("sug-limit", DAY)
    assert allowance.can_generate is False
    assert allowance.existing_count == 1
    assert allowance.reason == "Daily suggestion limit reached (1)"

    with pytest.raises(SuggestionLimitExceeded) as excinfo:
        await lens.suggestions.generate_daily("sug-limit", day=DAY)
    assert excinfo.value.existing == 1

    regenerated = await lens.suggestions.generate_daily("sug-limit", day=DAY, regenerate=True)
    assert len(regenerated.suggestions) == 1


@pytest.mark.asyncio
async def test_count_above_limit_is_refused(lens, entitlements):
    entitlements.limit = 3
    with pytest.raises(SuggestionLimitExceeded) as excinfo:
        await lens.suggestions.generate_daily("sug-over", count=4, day=DAY)
    assert excinfo.value.requested == 4
    assert lens.generator.hook_requests == []


@pytest.mark.asyncio
async def test_turkish_locale_uses_turkish_ctas(lens):
    batch = await lens.suggestions.generate_daily("sug-tr", count=4, locale="tr", day=DAY)
    for s in batch.suggestions:
        assert s.content.cta in CTA_TEMPLATES["tr"][s.content.tone]
        assert s.content.reason.startswith("Yeni bir")
    assert all(r.locale == "tr" for r in lens.generator.hook_requests)


@pytest.mark.asyncio
async def test_mark_used_and_stats(lens):
    await lens.suggestions.generate_daily("sug-used", count=4, day=DAY)
    rows = await lens.suggestions.todays("sug-used", DAY)
    used = await lens.suggestions.mark_used("sug-used", rows[0].id, generation_id="gen-1")
    assert used.used is True
    assert used.used_at is not None
    assert used.generation_id == "gen-1"

    stats = await lens.suggestions.stats("sug-used")
    assert stats.total_suggestions == len(rows)
    assert stats.used_suggestions == 1
    assert stats.usage_rate == pytest.approx(100 / len(rows))
    assert stats.top_patterns == [rows[0].content.pattern_key]

    with pytest.raises(NotFoundError):
        await lens.suggestions.mark_used("sug-used", "nope")


@pytest.mark.asyncio
async def test_generator_receives_persona_and_pattern_context(lens):
    await lens.onboard("sug-ctx", OnboardingAnswers(preferred_tone=Tone.SERIOUS))
    await lens.patterns.record_result(
        ContentResult(
            user_id="sug-ctx",
            platform=Platform.TIKTOK,
            category_group=CategoryGroup.CREATOR,
            category_slug="fitness",
            tone=Tone.FUNNY,
            content_preview="5 things nobody tells you",
            metrics=ContentMetrics(views=1000, engagement_rate=12.0),
        )
    )
    await lens.suggestions.generate_daily("sug-ctx", count=1, explore_ratio=0.0, day=DAY)

    (request,) = lens.generator.hook_requests
    assert request.pattern_key == "tiktok:creator:fitness:funny:any"
    assert request.reference_preview == "5 things nobody tells you"
    assert request.avg_engagement_rate == pytest.approx(12.0)
    assert request.niche == "fitness"
    assert request.overlay.enabled is True
    assert request.overlay.tone_preference is Tone.SERIOUS


@pytest.mark.asyncio
async def test_exploration_requests_carry_no_pattern_numbers(lens):
    await lens.suggestions.generate_daily("sug-ctx-explore", count=2, day=DAY)
    for request in lens.generator.hook_requests:
        assert request.is_exploration is True
        assert request.avg_engagement_rate is None
        assert request.reference_preview is None
        assert request.niche is None
        assert request.overlay is not None


@pytest.mark.asyncio
async def test_stored_row_is_last_snapshot_per_platform(lens):
    await _seed_patterns(lens, "sug-snap")
    batch = await lens.suggestions.generate_daily("sug-snap", day=DAY)
    last = {s.platform: s for s in batch.suggestions}
    stored = {r.platform: r for r in await lens.suggestions.todays("sug-snap", DAY)}
    assert stored.keys() == last.keys()
    for platform, row in stored.items():
        assert row.id == last[platform].id
        assert row.content.hook_idea == last[platform].content.hook_idea
    ids = [s.id for s in batch.suggestions]
    assert set(ids) == {r.id for r in stored.values()}
