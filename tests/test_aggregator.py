from datetime import timedelta

from chamber.domain.aggregator import compute_stats, window_stats
from chamber.domain.models import ChannelStats

from conftest import T0, reading


def test_empty_input_is_no_data():
    assert compute_stats([]) is None


def test_single_value():
    assert compute_stats([5]) == ChannelStats(min=5, max=5, average=5, median=5, latest=5)


def test_odd_length_median():
    assert compute_stats([3, 1, 2]).median == 2


def test_even_length_median_takes_index_n_over_2():
    # sorted [1, 2, 3, 4] -> index 2, not the 2.5 midpoint
    assert compute_stats([4, 1, 3, 2]).median == 3


def test_latest_comes_from_input_order():
    stats = compute_stats([10.0, 30.0, 20.0])
    assert stats.latest == 20.0
    assert stats.min == 10.0
    assert stats.max == 30.0


def test_average_is_not_rounded():
    assert compute_stats([1, 2, 2]).average == 5 / 3


def test_window_stats_empty_window():
    rows = [reading(minutes=-120)]
    assert window_stats(rows, T0 - timedelta(hours=1), T0) is None


def test_window_stats_per_channel_partial_data():
    # newest first, as the store returns them
    rows = [
        reading(minutes=3, temperature=24.0, co2=1200.0),
        reading(minutes=2, temperature=21.0),
        reading(minutes=1, temperature=23.0, co2=800.0),
        reading(minutes=-90, temperature=99.0),  # outside the window
    ]
    stats = window_stats(rows, T0 - timedelta(minutes=30), T0 + timedelta(minutes=5))

    assert stats.total_readings == 3
    assert stats.channels["temperature"] == ChannelStats(
        min=21.0, max=24.0, average=68.0 / 3, median=23.0, latest=24.0
    )
    assert stats.channels["co2"].latest == 1200.0
    assert stats.channels["co2"].median == 1200.0
    assert stats.channels["humidity"] is None
    assert stats.channels["light"] is None


def test_window_bounds_are_inclusive():
    rows = [reading(minutes=10, temperature=2.0), reading(minutes=0, temperature=1.0)]
    stats = window_stats(rows, T0, T0 + timedelta(minutes=10))
    assert stats.total_readings == 2
    assert stats.channels["temperature"].latest == 2.0


def test_equal_timestamps_keep_append_order():
    # same instant: the later append (first in newest-first order) is latest
    rows = [reading(minutes=0, temperature=2.0), reading(minutes=0, temperature=1.0)]
    stats = window_stats(rows, T0, T0)
    assert stats.channels["temperature"].latest == 2.0


def test_window_stats_to_dict():
    stats = window_stats([reading(minutes=0, temperature=20.0)], T0, T0)
    data = stats.to_dict()
    assert data["temperature"]["median"] == 20.0
    assert data["soilMoisture"] is None
    assert data["totalReadings"] == 1
    assert data["period"]["start"] == T0.isoformat()
