"""
FocusLog data models and Entry Store
"""

from .entry import Entry, EntryPayload, ReplacePayload, Session, TodoItem, Track, merge_sessions

__all__ = ['Entry', 'EntryPayload', 'ReplacePayload', 'Session', 'TodoItem', 'Track', 'merge_sessions']
