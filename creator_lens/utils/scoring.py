import math

from creator_lens.models import ContentMetrics

_DEFAULT_COMPLETION = 0.5


def engagement_rate(metrics: ContentMetrics) -> float:
    """Interactions per view, in percent. A caller-supplied rate wins."""
    if metrics.engagement_rate is not None:
        return metrics.engagement_rate
    if metrics.views <= 0:
        return 0.0
    interactions = metrics.likes + metrics.comments + metrics.shares + metrics.saves
    return interactions / metrics.views * 100.0


def performance_score(metrics: ContentMetrics) -> float:
    """Weighted 0-100 score: comments, saves and shares count for more than likes,
    scaled by completion rate and a log-views reach factor."""
    views = metrics.views
    if views <= 0:
        return 0.0
    completion = metrics.completion_rate if metrics.completion_rate is not None else _DEFAULT_COMPLETION
    weighted = (
        metrics.likes * 1.0
        + metrics.comments * 3.0
        + metrics.saves * 2.0
        + metrics.shares * 4.0
    ) / views * 100.0
    reach = min(math.log10(views + 1) / 5.0, 2.0)
    return min(max(weighted * completion * reach, 0.0), 100.0)


def total_engagement(metrics: ContentMetrics) -> int:
    return metrics.likes + metrics.comments + metrics.shares + metrics.saves
