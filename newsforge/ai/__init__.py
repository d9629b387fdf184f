"""
NewsForge Structuring Module
============================

Optional text-generation step that restructures cleaned article text
through Gemini or Groq, with response validation and bounded retries.
"""

from .providers.base import StructuringProvider, StructuringRequest
from .structuring import StructuringService, StructuredArticle

__all__ = ["StructuringProvider", "StructuringRequest", "StructuringService", "StructuredArticle"]
