"""
FocusLog - personal focus session tracker
"""

__version__ = '1.0.0'
