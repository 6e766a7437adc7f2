from datetime import date
from typing import Optional

from creator_lens.models import PatternStats, PerformanceInsight, PersonaSummary, SuggestionBatch
from creator_lens.utils.periods import format_change, trend_direction

_TREND_ARROWS = {"up": "▲", "down": "▼", "stable": "▬"}


def _trend(change: float) -> str:
    return f"{_TREND_ARROWS[trend_direction(change)]} {format_change(change)}"


def format_insight_report(insight: PerformanceInsight) -> str:
    """Format a weekly insight into a Markdown report string."""
    c = insight.content
    wow = c.week_over_week
    sections = [
        f"# Weekly Performance Report\n\n*{insight.period_start} – {insight.period_end}*\n",
        c.summary + "\n",
        "## Totals\n",
        f"- **Posts**: {c.total_content} ({wow.content_count_change:+d} vs previous week)",
        f"- **Views**: {c.total_views:,} ({_trend(wow.views_change)})",
        f"- **Avg engagement**: {c.avg_engagement_rate:.1f}% ({_trend(wow.engagement_change)})",
        f"- **Persona alignment**: {c.persona_alignment_score}/100",
        "",
    ]

    best = []
    if c.best_format:
        best.append(f"- **Format**: {c.best_format.value} ({c.best_format.avg_engagement:.1f}%, n={c.best_format.sample_count})")
    if c.best_tone:
        best.append(f"- **Tone**: {c.best_tone.value} ({c.best_tone.avg_engagement:.1f}%, n={c.best_tone.sample_count})")
    if c.best_platform:
        best.append(f"- **Platform**: {c.best_platform.value}")
    if c.best_goal:
        best.append(f"- **Goal**: {c.best_goal.value}")
    if best:
        sections.append("## Best Performers\n")
        sections.extend(best)
        sections.append("")

    if c.platform_comparison:
        sections.append("## Platforms\n")
        sections.append("| Platform | Posts | Avg views | Avg engagement | Best tone | Best format |")
        sections.append("|---|---|---|---|---|---|")
        for p in c.platform_comparison:
            tone = p.best_tone.value if p.best_tone else "–"
            fmt = p.best_format.value if p.best_format else "–"
            sections.append(
                f"| {p.platform.value} | {p.total_content} | {p.avg_views:,.0f} | "
                f"{p.avg_engagement_rate:.1f}% | {tone} | {fmt} |"
            )
        sections.append("")

    if c.recommendations:
        sections.append("## Recommendations\n")
        for i, rec in enumerate(c.recommendations, 1):
            sections.append(f"{i}. {rec}")
        sections.append("")

    return "\n".join(sections)


def format_suggestions(batch: SuggestionBatch, day: Optional[date] = None) -> str:
    sections = [f"# Content Ideas\n\n*{day or date.today()}*\n"]
    if not batch.suggestions:
        sections.append("_No suggestions could be generated._")
    for s in batch.suggestions:
        c = s.content
        label = "Experiment" if c.is_exploration else "Proven pattern"
        sections.append(f"### {s.platform.value} · {c.tone.value} {c.format.value} ({label})\n")
        sections.append(f"> {c.hook_idea}\n")
        sections.append(f"- **CTA**: {c.cta}")
        sections.append(f"- **Why**: {c.reason}")
        sections.append(f"- **Confidence**: {c.confidence_score:.0f}/100")
        sections.append("")
    sections.append(
        f"*{batch.exploitation_count} proven · {batch.exploration_count} experiments · "
        f"{batch.failed} skipped · daily limit {batch.limit}*"
    )
    return "\n".join(sections)


def format_persona_summary(summary: PersonaSummary) -> str:
    lines = [
        "# Creator Persona\n",
        f"- **Dominant tone**: {summary.dominant_tone.value} ({summary.dominant_tone_percentage}%)",
        f"- **Best format**: {summary.best_performing_format.value if summary.best_performing_format else 'not enough data'}",
        f"- **Typical hook length**: {summary.typical_hook_length} words",
        f"- **CTA style**: {summary.cta_style.value}",
        f"- **Pacing**: {summary.pacing.value}",
        f"- **Content generated**: {summary.total_content_generated} (save rate {summary.save_rate:.0%})",
    ]
    if not summary.has_enough_data:
        lines.append("\n_Save a few more pieces of content for a more confident profile._")
    return "\n".join(lines)


def format_patterns(patterns: list[PatternStats]) -> str:
    if not patterns:
        return "_No patterns with results yet._"
    rows = [
        "| Pattern | Results | Avg views | Avg engagement | Score |",
        "|---|---|---|---|---|",
    ]
    for p in patterns:
        rows.append(
            f"| `{p.pattern_key}` | {p.total_results} | {p.avg_views:,.0f} | "
            f"{p.avg_engagement_rate:.1f}% | {p.weighted_score:.2f} |"
        )
    return "\n".join(rows)
