from datetime import date

from creator_lens.formatter import format_insight_report, format_patterns, format_persona_summary, format_suggestions
from creator_lens.models import (
    BestPerformer,
    CTAStyle,
    DailySuggestion,
    FormatType,
    InsightContent,
    Pacing,
    PatternStats,
    PerformanceInsight,
    PersonaSummary,
    Platform,
    PlatformComparison,
    SuggestionBatch,
    SuggestionContent,
    Tone,
    WeekOverWeekChange,
)

INSIGHT = PerformanceInsight(
    user_id="u1",
    period_start=date(2024, 1, 1),
    period_end=date(2024, 1, 7),
    content=InsightContent(
        summary="A strong week.",
        best_tone=BestPerformer(type="tone", value="funny", avg_engagement=8.5, sample_count=3),
        best_platform=Platform.TIKTOK,
        platform_comparison=[
            PlatformComparison(
                platform=Platform.TIKTOK, total_content=3, avg_views=1234, avg_engagement_rate=8.5, best_tone=Tone.FUNNY
            )
        ],
        week_over_week=WeekOverWeekChange(views_change=25.0, engagement_change=-2.0, content_count_change=1),
        recommendations=["Post more often", "Try tutorials"],
        persona_alignment_score=70,
        total_content=3,
        total_views=3702,
        total_engagement=310,
        avg_engagement_rate=8.5,
    ),
)


def test_insight_report_sections():
    report = format_insight_report(INSIGHT)
    assert report.startswith("# Weekly Performance Report")
    assert "A strong week." in report
    assert "- **Views**: 3,702 (▲ +25.0%)" in report
    assert "(▬ -2.0%)" in report
    assert "- **Posts**: 3 (+1 vs previous week)" in report
    assert "| tiktok | 3 | 1,234 | 8.5% | funny | – |" in report
    assert "1. Post more often" in report
    assert "2. Try tutorials" in report


def test_empty_suggestion_batch():
    text = format_suggestions(SuggestionBatch(failed=2, limit=3), date(2024, 3, 1))
    assert "*2024-03-01*" in text
    assert "_No suggestions could be generated._" in text
    assert "2 skipped" in text


def test_suggestion_lines():
    suggestion = DailySuggestion(
        user_id="u1",
        suggestion_date=date(2024, 3, 1),
        platform=Platform.INSTAGRAM_REELS,
        content=SuggestionContent(
            hook_idea="Nobody talks about this",
            format=FormatType.STORY,
            tone=Tone.CONTROVERSIAL,
            cta="Join the debate!",
            reason="Trying a new controversial style to see how your audience reacts!",
            is_exploration=True,
            confidence_score=50,
        ),
    )
    text = format_suggestions(SuggestionBatch(suggestions=[suggestion], exploration_count=1, limit=3))
    assert "### instagram_reels · controversial story (Experiment)" in text
    assert "> Nobody talks about this" in text
    assert "- **Confidence**: 50/100" in text


def test_persona_summary_hint_without_data():
    summary = PersonaSummary(
        dominant_tone=Tone.FUNNY,
        dominant_tone_percentage=40,
        best_performing_format=None,
        typical_hook_length=12.0,
        cta_style=CTAStyle.SOFT,
        pacing=Pacing.MEDIUM,
        total_content_generated=4,
        save_rate=0.5,
        has_enough_data=False,
    )
    text = format_persona_summary(summary)
    assert "- **Dominant tone**: funny (40%)" in text
    assert "not enough data" in text
    assert "save rate 50%" in text
    assert "more confident profile" in text


def test_patterns_table():
    assert format_patterns([]) == "_No patterns with results yet._"
    stats = PatternStats(
        user_id="u1",
        pattern_key="tiktok:any:any:funny:any",
        platform=Platform.TIKTOK,
        total_results=4,
        avg_views=2500,
        avg_engagement_rate=6.0,
        weighted_score=4.8,
    )
    assert "| `tiktok:any:any:funny:any` | 4 | 2,500 | 6.0% | 4.80 |" in format_patterns([stats])
