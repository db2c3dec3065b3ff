"""
Template matching over a stream of captured frames.
"""

from .assets import AssetLibrary, Detection, ScanOutcome, ScanStatus
from .caching import FrameCache, TemplateCache
from .channel import ComputationChannel
from .config import MatchConfig, MatchMethod, ROIRegion, Settings, load_settings
from .errors import (
    ChannelClosedError,
    ChannelError,
    MatchTimeoutError,
    RemoteComputationError,
    TmplStreamError,
)
from .geometry import CoordinateMapper, DisplayGeometry, Rect
from .matching import BatchItemResult, BatchMatchResult, MatchEngine, MatchResult, TemplateMatcher
from .resources import ResourceScope
from .types import Frame, Template
from .vision import VisionSystem

__all__ = [
    "AssetLibrary",
    "BatchItemResult",
    "BatchMatchResult",
    "ChannelClosedError",
    "ChannelError",
    "ComputationChannel",
    "CoordinateMapper",
    "Detection",
    "DisplayGeometry",
    "Frame",
    "FrameCache",
    "MatchConfig",
    "MatchEngine",
    "MatchMethod",
    "MatchResult",
    "MatchTimeoutError",
    "ROIRegion",
    "Rect",
    "RemoteComputationError",
    "ResourceScope",
    "ScanOutcome",
    "ScanStatus",
    "Settings",
    "Template",
    "TemplateCache",
    "TemplateMatcher",
    "TmplStreamError",
    "VisionSystem",
    "load_settings",
]
