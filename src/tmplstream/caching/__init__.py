"""
Template and frame caches used by the matching worker and the orchestrator.
"""

from .frame_cache import FrameCache
from .keys import TemplateKey, frame_hash, template_key
from .template_cache import CachedTemplate, TemplateCache

__all__ = [
    "CachedTemplate",
    "FrameCache",
    "TemplateCache",
    "TemplateKey",
    "frame_hash",
    "template_key",
]
