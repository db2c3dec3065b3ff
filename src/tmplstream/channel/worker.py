from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Sequence

import cv2
import zmq

from ..caching import TemplateCache
from ..config import MatchConfig, ROIRegion, Settings
from ..matching import MatchEngine
from ..types import Template
from .protocol import REPLY_TYPES, Message, MessageType, decode, encode, request_id_of

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], MatchEngine]

SEND_TIMEOUT_MS = 1000


def build_engine(settings: Settings) -> MatchEngine:
    cache = TemplateCache(capacity=settings.template_cache_size, ttl=settings.template_cache_ttl)
    return MatchEngine(cache=cache, min_dimension=settings.min_dimension)


class MatchWorker(threading.Thread):
    """
    Isolated computation context running the match engine.

    The worker builds its own engine (and with it the template cache) inside
    the thread and talks to the caller only through ZeroMQ sockets: requests
    arrive on a PULL socket, replies leave on a PUSH socket. Any exception
    raised while serving a request becomes an ``ERROR`` reply carrying the
    request's id.
    """

    def __init__(
        self,
        context: zmq.Context,
        request_endpoint: str,
        response_endpoint: str,
        engine_factory: EngineFactory,
        poll_interval: float = 0.05,
        name: str = "tmplstream-worker",
    ) -> None:
        super().__init__(name=name, daemon=True)
        self._context = context
        self._request_endpoint = request_endpoint
        self._response_endpoint = response_endpoint
        self._engine_factory = engine_factory
        self._poll_ms = max(1, int(poll_interval * 1000))
        self._stop_event = threading.Event()
        self.startup_error: str | None = None

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:
        engine: MatchEngine | None = None
        try:
            engine = self._engine_factory()
        except Exception as exc:
            self.startup_error = f"engine construction failed: {exc}"
            logger.exception("Matching worker could not build its engine")

        requests = self._context.socket(zmq.PULL)
        responses = self._context.socket(zmq.PUSH)
        requests.linger = 0
        responses.linger = 0
        responses.sndtimeo = SEND_TIMEOUT_MS
        try:
            requests.connect(self._request_endpoint)
            responses.connect(self._response_endpoint)
            while not self._stop_event.is_set():
                if not requests.poll(self._poll_ms):
                    continue
                frames = requests.recv_multipart()
                reply = self.handle(engine, frames)
                if self._stop_event.is_set():
                    logger.debug("Worker stopped while busy, dropping reply #%s", request_id_of(frames))
                    break
                try:
                    responses.send_multipart(reply)
                except zmq.Again:
                    logger.warning("No reader for reply #%s, stopping worker", request_id_of(frames))
                    break
        except zmq.ContextTerminated:
            logger.debug("Worker context terminated")
        finally:
            requests.close()
            responses.close()
            logger.debug("Matching worker stopped")

    def handle(self, engine: MatchEngine | None, frames: Sequence[bytes]) -> List[bytes]:
        try:
            message = decode(frames)
        except (ValueError, KeyError) as exc:
            logger.warning("Rejecting malformed request: %s", exc)
            return encode(Message(id=request_id_of(frames), type=MessageType.ERROR, error=f"invalid request: {exc}"))

        if engine is None:
            return encode(Message(id=message.id, type=MessageType.ERROR, error=self.startup_error))

        try:
            result = self._dispatch(engine, message)
            return encode(Message(id=message.id, type=REPLY_TYPES[message.type], result=result))
        except Exception as exc:
            logger.exception("Worker failed on %s request #%s", message.type.value, message.id)
            return encode(
                Message(id=message.id, type=MessageType.ERROR, error=str(exc) or exc.__class__.__name__)
            )

    def _dispatch(self, engine: MatchEngine, message: Message) -> Any:
        payload = message.payload or {}
        if message.type is MessageType.INIT:
            return {"ready": True, "opencv_version": cv2.__version__}
        if message.type is MessageType.MATCH:
            config = MatchConfig.from_dict(payload.get("config", {}))
            result = engine.single_match(payload["image"]["data"], payload["template"]["data"], config)
            return result.to_dict()
        if message.type is MessageType.BATCH_MATCH:
            config = MatchConfig.from_dict(payload.get("config", {}))
            templates = [
                Template(
                    name=item["name"],
                    data=item["data"],
                    roi=ROIRegion.from_dict(item["roi"]) if item.get("roi") else None,
                )
                for item in payload["templates"]
            ]
            return engine.batch_match(payload["image"]["data"], templates, config).to_dict()
        if message.type is MessageType.GET_STATS:
            return {"stats": engine.stats()}
        if message.type is MessageType.CLEAR_CACHE:
            engine.clear_cache()
            logger.info("Template cache cleared")
            return {"stats": engine.stats()}
        raise ValueError(f"unsupported request type {message.type.value}")


__all__ = ["EngineFactory", "MatchWorker", "build_engine"]
