"""
Matching subpackage exposes the correlation search engine and its results.
"""

from .engine import EARLY_STOP_SCORE, MatchEngine
from .results import BatchItemResult, BatchMatchResult, MatchPerformance, MatchResult
from .scoring import NO_MATCH_SCORE, TemplateMatcher

__all__ = [
    "BatchItemResult",
    "BatchMatchResult",
    "EARLY_STOP_SCORE",
    "MatchEngine",
    "MatchPerformance",
    "MatchResult",
    "NO_MATCH_SCORE",
    "TemplateMatcher",
]
