"""
NewsForge Extraction Module
===========================

Ordered extraction strategies, the pooled headless browser they share and
the fallback recovery service used when all of them fail.
"""

from .strategies import ExtractionEngine, ExtractionAttempt, ExtractionOutcome, StrategyKind
from .browser_pool import BrowserPool
from .fallback import FallbackRecoveryService, FallbackContent

__all__ = [
    "ExtractionEngine",
    "ExtractionAttempt",
    "ExtractionOutcome",
    "StrategyKind",
    "BrowserPool",
    "FallbackRecoveryService",
    "FallbackContent",
]
