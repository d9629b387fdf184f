"""
NewsForge Image Module
======================
"""

from .analyzer import ImageQualityAnalyzer, ImageAssignment, score_image

__all__ = ["ImageQualityAnalyzer", "ImageAssignment", "score_image"]
