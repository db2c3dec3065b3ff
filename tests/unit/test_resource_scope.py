import numpy as np
import pytest

from tmplstream import ResourceScope


class Handle:
    def __init__(self, log, name) -> None:
        self.log = log
        self.name = name

    def release(self) -> None:
        self.log.append(self.name)


def test_close_releases_in_reverse_order() -> None:
    log = []
    with ResourceScope("outer") as scope:
        scope.track(Handle(log, "a"))
        scope.track(Handle(log, "b"))
        scope.track(Handle(log, "c"))

    assert log == ["c", "b", "a"]
    assert scope.closed
    assert scope.allocated == scope.released == 3


def test_resources_released_when_block_raises() -> None:
    log = []
    with pytest.raises(RuntimeError):
        with ResourceScope() as scope:
            scope.track(Handle(log, "buffer"))
            raise RuntimeError("matching failed")

    assert log == ["buffer"]
    assert scope.live_count == 0


def test_early_release_is_not_repeated_on_close() -> None:
    log = []
    with ResourceScope() as scope:
        handle = scope.track(Handle(log, "heatmap"))
        assert scope.release(handle)
        assert not scope.release(handle)

    assert log == ["heatmap"]
    assert scope.released == 1


def test_release_callback_takes_precedence() -> None:
    calls = []
    log = []
    with ResourceScope() as scope:
        scope.track(Handle(log, "ignored"), release=calls.append)

    assert len(calls) == 1
    assert log == []


def test_plain_arrays_are_counted_and_dropped() -> None:
    with ResourceScope() as scope:
        array = scope.track(np.zeros((4, 4), dtype=np.uint8))
        assert array.shape == (4, 4)
        assert scope.live_count == 1

    assert scope.live_count == 0
    assert scope.released == 1


def test_parent_close_closes_open_children_first() -> None:
    log = []
    parent = ResourceScope("frame")
    parent.track(Handle(log, "frame"))
    child = parent.child("template")
    child.track(Handle(log, "template"))

    parent.close()

    assert child.closed
    assert log == ["template", "frame"]


def test_child_closed_before_parent_detaches() -> None:
    log = []
    with ResourceScope("batch") as parent:
        for name in ("first", "second"):
            with parent.child(name) as child:
                child.track(Handle(log, name))
            assert log[-1] == name
        assert parent._children == []


def test_failing_release_does_not_block_the_rest() -> None:
    log = []

    def explode(_resource) -> None:
        raise RuntimeError("release failed")

    scope = ResourceScope()
    scope.track(Handle(log, "kept"))
    scope.track(object(), release=explode)
    scope.close()

    assert log == ["kept"]
    assert scope.live_count == 0


def test_closed_scope_rejects_new_resources() -> None:
    scope = ResourceScope("done")
    scope.close()
    scope.close()

    with pytest.raises(RuntimeError):
        scope.track(object())
    with pytest.raises(RuntimeError):
        scope.child()
