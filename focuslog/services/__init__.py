"""
External service adapters
"""

from .ai_summary import AISummaryAdapter

__all__ = ['AISummaryAdapter']
