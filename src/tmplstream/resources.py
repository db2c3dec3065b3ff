from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Release = Callable[[Any], None]


@dataclass(slots=True)
class _Handle:
    resource: Any
    release: Optional[Release]
    live: bool = True


class ResourceScope:
    """
    Arena for buffers and handles allocated during one logical operation.

    Every tracked resource still live when the scope closes is released
    exactly once, in reverse allocation order, also when the block exits
    through an exception. A resource is released by its ``release`` callback
    when one was given, by its own ``release()`` method when it has one
    (``cv2.VideoCapture``, ``cv2.UMat``-like handles), and otherwise simply
    dropped so numpy can reclaim it.

    Scopes nest: ``child()`` opens a scope that must close before its parent,
    and closing the parent closes any child left open.
    """

    def __init__(self, label: str = "scope", parent: "ResourceScope | None" = None) -> None:
        self.label = label
        self.parent = parent
        self._handles: List[_Handle] = []
        self._children: List[ResourceScope] = []
        self._closed = False
        self.allocated = 0
        self.released = 0

    def __enter__(self) -> "ResourceScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def live_count(self) -> int:
        return sum(1 for handle in self._handles if handle.live)

    def track(self, resource: T, release: Optional[Release] = None) -> T:
        """
        Register ``resource`` and return it unchanged.
        """
        if self._closed:
            raise RuntimeError(f"cannot track resources in closed scope '{self.label}'")
        self._handles.append(_Handle(resource=resource, release=release))
        self.allocated += 1
        return resource

    def release(self, resource: Any) -> bool:
        """
        Release a tracked resource before the scope ends.

        Returns False when the resource is unknown or already released.
        """
        for handle in reversed(self._handles):
            if handle.resource is resource and handle.live:
                self._release_handle(handle)
                return True
        return False

    def child(self, label: str | None = None) -> "ResourceScope":
        if self._closed:
            raise RuntimeError(f"cannot open a child of closed scope '{self.label}'")
        scope = ResourceScope(label or f"{self.label}/child", parent=self)
        self._children.append(scope)
        return scope

    def close(self) -> None:
        if self._closed:
            return
        for scope in reversed(self._children):
            scope.close()
        self._children.clear()

        failures = 0
        for handle in reversed(self._handles):
            if not handle.live:
                continue
            try:
                self._release_handle(handle)
            except Exception:
                failures += 1
                logger.exception("Failed to release resource in scope '%s'", self.label)
        self._handles.clear()
        self._closed = True
        if self.parent is not None and self in self.parent._children:
            self.parent._children.remove(self)
        logger.debug(
            "Closed scope '%s' (allocated=%d released=%d failures=%d)",
            self.label,
            self.allocated,
            self.released,
            failures,
        )

    def _release_handle(self, handle: _Handle) -> None:
        handle.live = False
        resource = handle.resource
        handle.resource = None
        self.released += 1
        if handle.release is not None:
            handle.release(resource)
            return
        release = getattr(resource, "release", None)
        if callable(release):
            release()


__all__ = ["ResourceScope"]
