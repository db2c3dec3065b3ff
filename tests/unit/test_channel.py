import time

import pytest

from tmplstream import (
    ChannelClosedError,
    ComputationChannel,
    MatchConfig,
    MatchEngine,
    MatchTimeoutError,
    RemoteComputationError,
    Settings,
    Template,
)

WAIT = 10.0


class SlowEngine(MatchEngine):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    def single_match(self, frame, template, config=None):
        time.sleep(self.delay)
        return super().single_match(frame, template, config)

    def batch_match(self, frame, templates, config=None):
        time.sleep(self.delay)
        return super().batch_match(frame, templates, config)


class FailingEngine(MatchEngine):
    def single_match(self, frame, template, config=None):
        raise RuntimeError("matcher exploded")


@pytest.fixture
def channel():
    channel = ComputationChannel(Settings(poll_interval=0.01))
    channel.ready.result(timeout=WAIT)
    yield channel
    channel.close()


def test_ready_reports_worker_info(channel) -> None:
    info = channel.ready.result(timeout=WAIT)
    assert info["ready"] is True
    assert "opencv_version" in info


def test_match_round_trip(channel, scene) -> None:
    template = scene[50:82, 100:132].copy()

    result = channel.match(scene, template, MatchConfig(downsample=1.0)).result(timeout=WAIT)

    assert result.score >= 0.99
    assert (result.x, result.y) == (100, 50)
    assert channel.pending_count == 0


def test_caller_may_reuse_buffers_after_submit(channel, scene) -> None:
    frame = scene.copy()
    template = scene[50:82, 100:132].copy()

    future = channel.match(frame, template, MatchConfig(downsample=1.0))
    frame.fill(0)
    template.fill(0)

    assert future.result(timeout=WAIT).score >= 0.99


def test_concurrent_requests_resolve_to_their_own_results(channel, scene) -> None:
    positions = [(100, 50), (400, 200), (520, 300)]
    futures = [
        channel.match(scene, scene[y : y + 32, x : x + 32].copy(), MatchConfig(downsample=1.0))
        for x, y in positions
    ]

    for (x, y), future in zip(positions, futures):
        result = future.result(timeout=WAIT)
        assert (result.x, result.y) == (x, y)


def test_batch_round_trip(channel, scene) -> None:
    templates = [
        Template(name="a", data=scene[50:82, 100:132].copy()),
        Template(name="b", data=scene[200:240, 400:440].copy()),
    ]

    batch = channel.batch_match(scene, templates, MatchConfig(downsample=0.5)).result(timeout=WAIT)

    assert batch.matched_count == 2
    assert (batch.get("b").x, batch.get("b").y) == (400, 200)


def test_stats_and_clear_cache(channel, scene) -> None:
    channel.match(scene, scene[50:82, 100:132].copy()).result(timeout=WAIT)

    stats = channel.stats().result(timeout=WAIT)
    assert stats["match_count"] == 1
    assert stats["cache"]["size"] == 1

    cleared = channel.clear_cache().result(timeout=WAIT)
    assert cleared["cache"]["size"] == 0


def test_worker_errors_reject_only_the_failing_request(scene) -> None:
    with ComputationChannel(Settings(poll_interval=0.01), engine_factory=FailingEngine) as channel:
        future = channel.match(scene, scene[:32, :32].copy())

        with pytest.raises(RemoteComputationError, match="matcher exploded") as info:
            future.result(timeout=WAIT)

        assert info.value.request_type == "MATCH"
        assert channel.pending_count == 0
        assert channel.stats().result(timeout=WAIT)["match_count"] == 0


def test_engine_construction_failure_rejects_ready() -> None:
    def broken() -> MatchEngine:
        raise RuntimeError("no opencv")

    with ComputationChannel(Settings(poll_interval=0.01), engine_factory=broken) as channel:
        with pytest.raises(RemoteComputationError, match="no opencv"):
            channel.ready.result(timeout=WAIT)


def test_batch_request_times_out_and_leaves_no_entry(scene) -> None:
    settings = Settings(batch_timeout=0.2, poll_interval=0.01)
    with ComputationChannel(settings, engine_factory=lambda: SlowEngine(0.8)) as channel:
        templates = [Template(name="a", data=scene[50:82, 100:132].copy())]
        future = channel.batch_match(scene, templates)

        with pytest.raises(MatchTimeoutError):
            future.result(timeout=WAIT)
        assert channel.pending_count == 0

        # The late reply is dropped; later requests still resolve.
        result = channel.match(scene, scene[50:82, 100:132].copy(), MatchConfig(downsample=1.0)).result(timeout=WAIT)
        assert result.score >= 0.99


def test_single_timeout_applies_when_configured(scene) -> None:
    settings = Settings(single_timeout=0.2, poll_interval=0.01)
    with ComputationChannel(settings, engine_factory=lambda: SlowEngine(0.8)) as channel:
        future = channel.match(scene, scene[:32, :32].copy())

        with pytest.raises(MatchTimeoutError):
            future.result(timeout=WAIT)


def test_close_rejects_pending_and_future_requests(scene) -> None:
    channel = ComputationChannel(Settings(poll_interval=0.01), engine_factory=lambda: SlowEngine(0.5))
    future = channel.match(scene, scene[:32, :32].copy())

    channel.close()

    assert channel.closed
    assert isinstance(future.exception(timeout=WAIT), ChannelClosedError)
    late = channel.stats()
    assert isinstance(late.exception(timeout=WAIT), ChannelClosedError)
    channel.close()


def test_close_while_worker_busy_lets_worker_exit(scene) -> None:
    channel = ComputationChannel(Settings(poll_interval=0.01), engine_factory=lambda: SlowEngine(1.0))
    channel.ready.result(timeout=WAIT)
    future = channel.match(scene, scene[:32, :32].copy())
    time.sleep(0.2)

    channel.close(timeout=0.1)

    assert isinstance(future.exception(timeout=WAIT), ChannelClosedError)
    channel._worker.join(WAIT)
    assert not channel._worker.is_alive()
