import pytest

from tmplstream import MatchResult
from tmplstream.matching.results import MatchPerformance
from tmplstream.stats import MatchStats


def result(duration: float, **kwargs) -> MatchResult:
    return MatchResult(performance=MatchPerformance(duration=duration), **kwargs)


def test_records_durations_and_flags() -> None:
    stats = MatchStats()
    stats.record_match(result(4.0, cache_hit=True, used_roi=True))
    stats.record_match(result(2.0, adaptive_scaling=True))

    assert stats.match_count == 2
    assert stats.average_time == pytest.approx(3.0)
    assert (stats.best_time, stats.worst_time) == (2.0, 4.0)
    assert stats.cache_hit_rate == pytest.approx(0.5)
    assert (stats.roi_matches, stats.full_frame_matches) == (1, 1)
    assert stats.adaptive_attempts == 1


def test_reset_restores_defaults() -> None:
    stats = MatchStats()
    stats.record_match(result(1.0))
    stats.record_frame(cache_hit=True)

    stats.reset()

    assert stats == MatchStats()
    assert stats.average_time == 0.0
    assert stats.cache_hit_rate == 0.0
