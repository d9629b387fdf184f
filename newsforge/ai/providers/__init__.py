"""
Structuring Providers
=====================
"""

from .base import StructuringProvider, StructuringRequest

__all__ = ["StructuringProvider", "StructuringRequest"]
