"""
Prometheus metrics for the FocusLog service
"""

from prometheus_client import Counter, Gauge, Histogram, Info

app_info = Info('focuslog', 'FocusLog Application Information')

ENTRIES_LOGGED = Counter(
    'focuslog_entries_logged_total',
    'Create-or-merge operations on daily entries',
    ['source']
)

ENTRIES_REPLACED = Counter(
    'focuslog_entries_replaced_total',
    'Manual full overwrites of daily entries'
)

ENTRIES_DELETED = Counter(
    'focuslog_entries_deleted_total',
    'Deleted daily entries'
)

FOCUSED_HOURS = Histogram(
    'focuslog_session_focused_hours',
    'Focused hours per logged session',
    buckets=[0.25, 0.5, 1, 1.5, 2, 3, 4, 6, 8]
)

TIMER_EVENTS = Counter(
    'focuslog_timer_events_total',
    'Live timer events',
    ['event']
)

ACTIVE_TIMERS = Gauge(
    'focuslog_active_timer_connections',
    'Number of connected timer clients'
)

AI_REQUEST_DURATION = Histogram(
    'focuslog_ai_request_duration_seconds',
    'Duration of AI summary requests',
    ['provider'],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0]
)

AI_REQUEST_ERRORS = Counter(
    'focuslog_ai_request_errors_total',
    'AI summary requests that fell back to static text',
    ['provider', 'error']
)
