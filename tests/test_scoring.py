from datetime import date

import pytest

from creator_lens.models import ContentMetrics
from creator_lens.utils.periods import format_change, last_completed_week, previous_window, trend_direction
from creator_lens.utils.scoring import engagement_rate, performance_score, total_engagement


def test_engagement_rate_from_interactions():
    metrics = ContentMetrics(views=100, likes=10, comments=5, shares=3, saves=2)
    assert engagement_rate(metrics) == pytest.approx(20.0)
    assert total_engagement(metrics) == 20


def test_supplied_engagement_rate_wins():
    assert engagement_rate(ContentMetrics(views=100, likes=10, engagement_rate=7.5)) == 7.5


def test_zero_views_means_zero_rates():
    metrics = ContentMetrics(views=0, likes=10)
    assert engagement_rate(metrics) == 0.0
    assert performance_score(metrics) == 0.0


def test_performance_score_weights_interactions():
    metrics = ContentMetrics(views=1000, likes=100, comments=10, saves=10, shares=5)
    # (100 + 30 + 20 + 20) / 1000 * 100 = 17, x 0.5 default completion, x log10(1001) / 5
    assert performance_score(metrics) == pytest.approx(5.1007, abs=1e-3)


def test_performance_score_is_capped():
    metrics = ContentMetrics(views=10, likes=10, comments=10, saves=10, shares=10, completion_rate=1.0)
    assert performance_score(metrics) == 100.0


def test_last_completed_week():
    # 2024-01-10 is a Wednesday
    assert last_completed_week(date(2024, 1, 10)) == (date(2024, 1, 1), date(2024, 1, 7))
    # On a Monday the week that just ended counts
    assert last_completed_week(date(2024, 1, 8)) == (date(2024, 1, 1), date(2024, 1, 7))


def test_previous_window():
    assert previous_window(date(2024, 1, 8)) == (date(2024, 1, 1), date(2024, 1, 7))


def test_trend_direction_band():
    assert trend_direction(5.0) == "stable"
    assert trend_direction(-5.0) == "stable"
    assert trend_direction(5.1) == "up"
    assert trend_direction(-6) == "down"


def test_format_change():
    assert format_change(12.345) == "+12.3%"
    assert format_change(-3) == "-3.0%"
    assert format_change(0) == "0.0%"
