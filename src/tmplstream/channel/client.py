from __future__ import annotations

import itertools
import logging
import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Sequence, TypeVar

import numpy as np
import zmq

from ..config import MatchConfig, Settings
from ..errors import ChannelClosedError, ChannelError, MatchTimeoutError, RemoteComputationError
from ..matching import BatchMatchResult, MatchResult
from ..types import Template
from .protocol import Message, MessageType, decode, encode, image_payload
from .worker import EngineFactory, MatchWorker, build_engine

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

SEND_TIMEOUT_MS = 1000


@dataclass(slots=True)
class _Pending:
    future: Future
    request_type: MessageType
    decoder: Callable[[Any], Any]
    deadline: float | None


def chain(future: "Future[T]", transform: Callable[[T], U]) -> "Future[U]":
    """
    Future resolving to ``transform(result)`` once ``future`` succeeds.
    """
    chained: "Future[U]" = Future()
    chained.set_running_or_notify_cancel()

    def _done(source: "Future[T]") -> None:
        error = source.exception()
        if error is not None:
            chained.set_exception(error)
            return
        try:
            chained.set_result(transform(source.result()))
        except Exception as exc:
            chained.set_exception(exc)

    future.add_done_callback(_done)
    return chained


def resolved(value: T) -> "Future[T]":
    future: "Future[T]" = Future()
    future.set_running_or_notify_cancel()
    future.set_result(value)
    return future


class ComputationChannel:
    """
    Request/response bridge to the isolated matching worker.

    Each request gets a fresh integer id and an entry in the correlation
    table; the dispatch thread resolves the matching future when the reply
    with that id arrives and removes the entry. Batch requests expire after
    ``settings.batch_timeout`` seconds; single matches only when
    ``settings.single_timeout`` is set.

    Returned futures are already marked running, so a caller that loses
    interest simply drops its reference; the request still completes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        engine_factory: EngineFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self._clock = clock
        if self.settings.max_workers > 1:
            logger.debug("max_workers=%d is reserved; starting a single worker", self.settings.max_workers)

        token = uuid.uuid4().hex
        request_endpoint = f"inproc://tmplstream-requests-{token}"
        response_endpoint = f"inproc://tmplstream-responses-{token}"

        self._context = zmq.Context()
        self._requests = self._context.socket(zmq.PUSH)
        self._requests.linger = 0
        self._requests.sndtimeo = SEND_TIMEOUT_MS
        self._requests.bind(request_endpoint)
        self._responses = self._context.socket(zmq.PULL)
        self._responses.linger = 0
        self._responses.bind(response_endpoint)

        self._pending: Dict[int, _Pending] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._closed = False
        self._stop_event = threading.Event()
        self._poll_ms = max(1, int(self.settings.poll_interval * 1000))

        self._worker = MatchWorker(
            self._context,
            request_endpoint,
            response_endpoint,
            engine_factory or partial(build_engine, self.settings),
            poll_interval=self.settings.poll_interval,
        )
        self._worker.start()
        self._dispatcher = threading.Thread(target=self._dispatch_loop, name="tmplstream-dispatch", daemon=True)
        self._dispatcher.start()

        self.ready: "Future[dict]" = self._submit(MessageType.INIT, None, dict, None)

    def __enter__(self) -> "ComputationChannel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def match(
        self,
        image: np.ndarray,
        template: np.ndarray,
        config: MatchConfig | None = None,
    ) -> "Future[MatchResult]":
        payload = {
            "image": image_payload(image),
            "template": image_payload(template),
            "config": (config or self.settings.match).to_dict(),
        }
        return self._submit(MessageType.MATCH, payload, MatchResult.from_dict, self.settings.single_timeout)

    def batch_match(
        self,
        image: np.ndarray,
        templates: Sequence[Template],
        config: MatchConfig | None = None,
    ) -> "Future[BatchMatchResult]":
        payload = {
            "image": image_payload(image),
            "templates": [
                {
                    **image_payload(template.data),
                    "name": template.name,
                    "roi": template.roi.to_dict() if template.roi is not None else None,
                }
                for template in templates
            ],
            "config": (config or self.settings.match).to_dict(),
        }
        return self._submit(
            MessageType.BATCH_MATCH, payload, BatchMatchResult.from_dict, self.settings.batch_timeout
        )

    def stats(self) -> "Future[dict]":
        return self._submit(MessageType.GET_STATS, None, _stats_of, None)

    def clear_cache(self) -> "Future[dict]":
        return self._submit(MessageType.CLEAR_CACHE, None, _stats_of, None)

    def close(self, timeout: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            abandoned = list(self._pending.items())
            self._pending.clear()

        for request_id, pending in abandoned:
            pending.future.set_exception(
                ChannelClosedError(f"channel closed before {pending.request_type.value} #{request_id} completed")
            )

        self._worker.stop()
        self._stop_event.set()
        self._dispatcher.join(timeout)
        self._worker.join(timeout)
        self._requests.close()
        self._responses.close()
        if self._worker.is_alive():
            # term() blocks until the worker closes its sockets on exit.
            logger.warning("Matching worker still busy after %.1fs; terminating its context in the background", timeout)
            threading.Thread(target=self._context.term, name="tmplstream-term", daemon=True).start()
            return
        self._context.term()
        logger.debug("Computation channel closed")

    def _submit(
        self,
        request_type: MessageType,
        payload: Any,
        decoder: Callable[[Any], Any],
        timeout: float | None,
    ) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()

        request_id = next(self._ids)
        try:
            frames = encode(Message(id=request_id, type=request_type, payload=payload))
        except (TypeError, ValueError) as exc:
            future.set_exception(ChannelError(f"could not encode {request_type.value}: {exc}"))
            return future

        deadline = self._clock() + timeout if timeout is not None else None
        with self._lock:
            if self._closed:
                future.set_exception(ChannelClosedError(f"channel closed, {request_type.value} not sent"))
                return future
            self._pending[request_id] = _Pending(future, request_type, decoder, deadline)
            try:
                self._requests.send_multipart(frames)
            except zmq.ZMQError as exc:
                del self._pending[request_id]
                future.set_exception(ChannelError(f"could not send {request_type.value}: {exc}"))
                return future
        logger.debug("Sent %s #%d", request_type.value, request_id)
        return future

    def _dispatch_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                if self._responses.poll(self._poll_ms):
                    self._deliver(self._responses.recv_multipart())
            except zmq.ContextTerminated:
                break
            self._expire(self._clock())

    def _deliver(self, frames: Sequence[bytes]) -> None:
        try:
            message = decode(frames)
        except ValueError as exc:
            logger.warning("Dropping undecodable reply: %s", exc)
            return

        with self._lock:
            pending = self._pending.pop(message.id, None) if message.id is not None else None
        if pending is None:
            logger.warning("Dropping %s for unknown or expired request #%s", message.type.value, message.id)
            return

        if message.type is MessageType.ERROR:
            pending.future.set_exception(
                RemoteComputationError(message.error or "unknown worker error", pending.request_type.value)
            )
            return
        if message.type is MessageType.INIT_DONE:
            logger.info("Matching worker ready (%s)", message.result)

        try:
            value = pending.decoder(message.result)
        except Exception as exc:
            pending.future.set_exception(ChannelError(f"could not decode {message.type.value}: {exc}"))
            return
        pending.future.set_result(value)

    def _expire(self, now: float) -> None:
        with self._lock:
            expired = [
                (request_id, pending)
                for request_id, pending in self._pending.items()
                if pending.deadline is not None and now >= pending.deadline
            ]
            for request_id, _ in expired:
                del self._pending[request_id]

        for request_id, pending in expired:
            logger.warning("%s #%d timed out", pending.request_type.value, request_id)
            pending.future.set_exception(
                MatchTimeoutError(f"{pending.request_type.value} #{request_id} timed out")
            )


def _stats_of(result: Any) -> dict:
    return dict(result["stats"])


__all__ = ["ComputationChannel", "chain", "resolved"]
