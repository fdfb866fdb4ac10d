"""
Skin Wellness Analysis Backend

Scoring and normalization engine for AI skin diagnostics, plus the
rate-limited pipeline that runs SkinXS analyses for photo sessions.
"""

__version__ = "1.0.0"
