"""
Per-frame selection of coaching cues.
"""

from .feedback_selector import FeedbackCue, FeedbackSelector, merge_feedback

__all__ = ['FeedbackCue', 'FeedbackSelector', 'merge_feedback']
