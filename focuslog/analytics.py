"""
Aggregation engine - derives streaks, heatmaps and rollups from focus entries.

Every function here is pure: it only reads the entries it is given and returns
new objects. Degenerate input (empty lists, duplicate dates, zero-hour
sessions, unparseable dates) produces degenerate output, never an exception.
Sums use math.fsum so results do not depend on input order.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Union

from focuslog import config
from focuslog.models.entry import Entry
from focuslog.utils.dates import days_back, parse_date, today_canonical

ALL_CATEGORIES = 'All'


# =============================================================================
# WINDOWS
# =============================================================================

@dataclass(frozen=True)
class RelativeDays:
    """Entries dated within the last `n` days, inclusive of today."""
    n: int


@dataclass(frozen=True)
class AllTime:
    """No filtering."""


@dataclass(frozen=True)
class CustomRange:
    """Entries with start <= date <= end (YYYY-MM-DD, both inclusive)."""
    start: str
    end: str


Window = Union[RelativeDays, AllTime, CustomRange]


def parse_window(range_value: Optional[str], start: Optional[str] = None,
                 end: Optional[str] = None) -> Window:
    """Build a window from dashboard query parameters ('7', '30', 'all', 'custom')."""
    value = (range_value or '7').strip().lower()
    if value == 'all':
        return AllTime()
    if value == 'custom':
        if start and end:
            return CustomRange(start, end)
        return AllTime()
    try:
        days = int(value)
    except ValueError:
        return RelativeDays(7)
    return RelativeDays(days) if days > 0 else RelativeDays(7)


def filter_by_window(entries: Iterable[Entry], window: Window,
                     today: Optional[date] = None) -> List[Entry]:
    """Select entries by their date field only."""
    if isinstance(window, AllTime):
        return list(entries)

    if isinstance(window, CustomRange):
        return [e for e in entries if window.start <= e.date <= window.end]

    today = today or today_canonical()
    selected = []
    for entry in entries:
        entry_date = parse_date(entry.date)
        if entry_date is None:
            continue
        # One day of slack absorbs zone rounding at the boundary
        if abs((today - entry_date).days) <= window.n + 1:
            selected.append(entry)
    return selected


# =============================================================================
# PER-ENTRY TOTALS
# =============================================================================

def total_focused(entry: Entry, category: Optional[str] = None) -> float:
    return math.fsum(s.focused for s in entry.sessions
                     if category is None or s.category == category)


def total_assigned(entry: Entry, category: Optional[str] = None) -> float:
    return math.fsum(s.assigned for s in entry.sessions
                     if category is None or s.category == category)


def efficiency(total_focused_hours: float, total_assigned_hours: float) -> float:
    """Focused/assigned as a percentage, 0 when nothing was assigned."""
    if not total_assigned_hours:
        return 0.0
    return total_focused_hours / total_assigned_hours * 100


# =============================================================================
# STREAKS
# =============================================================================

def active_dates(entries: Iterable[Entry]) -> set:
    """Calendar dates with a positive focused total (duplicates collapse)."""
    by_date = defaultdict(list)
    for entry in entries:
        entry_date = parse_date(entry.date)
        if entry_date is not None:
            by_date[entry_date].append(total_focused(entry))
    return {d for d, totals in by_date.items() if math.fsum(totals) > 0}


def compute_streak(entries: Iterable[Entry], today: Optional[date] = None) -> int:
    """
    Count consecutive active days ending today or yesterday.

    A streak is alive only if today or yesterday is active. The walk starts
    at today when today is active, otherwise at yesterday, and stops at the
    first inactive day.
    """
    dates = active_dates(entries)
    if not dates:
        return 0

    today = today or today_canonical()
    yesterday = today - timedelta(days=1)

    if today in dates:
        check = today
    elif yesterday in dates:
        check = yesterday
    else:
        return 0

    streak = 0
    while check in dates:
        streak += 1
        check -= timedelta(days=1)
    return streak


def compute_longest_streak(entries: Iterable[Entry]) -> int:
    """Longest run of consecutive active days anywhere in history."""
    dates = sorted(active_dates(entries))
    if not dates:
        return 0

    longest = 1
    current_run = 1
    for previous, current in zip(dates, dates[1:]):
        if (current - previous).days == 1:
            current_run += 1
            longest = max(longest, current_run)
        else:
            current_run = 1
    return longest


def streak_stats(entries: Iterable[Entry], today: Optional[date] = None) -> Dict[str, int]:
    entries = list(entries)
    return {
        'current_streak': compute_streak(entries, today),
        'longest_streak': compute_longest_streak(entries),
        'total_days': len(active_dates(entries)),
    }


# =============================================================================
# HEATMAP
# =============================================================================

def build_heatmap_series(entries: Iterable[Entry], window_days: int,
                         cap_hours: Optional[float] = None,
                         today: Optional[date] = None) -> List[Dict]:
    """
    Zero-filled per-day focused hours for the trailing window.

    Returns exactly window_days + 1 items in chronological order, the last
    one being today. Intensity is hours scaled against cap_hours and clipped
    to 1.0; it never changes the hours value.
    """
    if window_days < 0:
        return []
    cap_hours = config.HEATMAP_CAP_HOURS if cap_hours is None else cap_hours
    today = today or today_canonical()

    hours_by_date = defaultdict(list)
    for entry in entries:
        entry_date = parse_date(entry.date)
        if entry_date is not None:
            hours_by_date[entry_date].append(total_focused(entry))

    series = []
    for day in days_back(today, window_days + 1):
        hours = math.fsum(hours_by_date.get(day, []))
        if cap_hours > 0:
            intensity = min(hours / cap_hours, 1.0)
        else:
            intensity = 1.0 if hours > 0 else 0.0
        series.append({'date': day.isoformat(), 'hours': hours, 'intensity': intensity})
    return series


# =============================================================================
# CATEGORY ROLLUPS & TIMELINES
# =============================================================================

def _category_filter(category: Optional[str]) -> Optional[str]:
    if category is None or category == ALL_CATEGORIES:
        return None
    return category


def build_category_rollup(entries: Iterable[Entry],
                          category: Optional[str] = None) -> Dict[str, Dict[str, float]]:
    """
    Sum focused/assigned hours per exact category string.

    Categories are case-sensitive and untrimmed: 'DSA' and 'dsa ' are
    separate buckets.
    """
    category = _category_filter(category)
    focused = defaultdict(list)
    assigned = defaultdict(list)

    for entry in entries:
        for session in entry.sessions:
            if category is not None and session.category != category:
                continue
            focused[session.category].append(session.focused)
            assigned[session.category].append(session.assigned)

    return {
        name: {'focused': math.fsum(focused[name]), 'assigned': math.fsum(assigned[name])}
        for name in focused
    }


def rank_categories(rollup: Dict[str, Dict[str, float]]) -> List[Dict]:
    """Rollup as a list, biggest focused total first."""
    ranked = [
        {'name': name, 'focused': totals['focused'], 'assigned': totals['assigned']}
        for name, totals in rollup.items()
    ]
    return sorted(ranked, key=lambda c: (-c['focused'], c['name']))


def build_daily_timeline(entries: Iterable[Entry], category: Optional[str] = None) -> List[Dict]:
    """One point per entry, oldest first, summing that day's (filtered) sessions."""
    category = _category_filter(category)
    ordered = sorted(entries, key=lambda e: e.date)
    return [
        {
            'date': entry.date,
            'focused': total_focused(entry, category),
            'assigned': total_assigned(entry, category),
        }
        for entry in ordered
    ]


def build_category_trend(entries: Iterable[Entry]) -> List[Dict]:
    """Per entry, oldest first: focused hours keyed by category."""
    trend = []
    for entry in sorted(entries, key=lambda e: e.date):
        by_category = defaultdict(list)
        for session in entry.sessions:
            by_category[session.category].append(session.focused)
        point = {'date': entry.date}
        point.update({name: math.fsum(hours) for name, hours in by_category.items()})
        trend.append(point)
    return trend


def available_categories(entries: Iterable[Entry]) -> List[str]:
    return sorted({s.category for e in entries for s in e.sessions})


def recent_entries(entries: Iterable[Entry], n: int) -> List[Entry]:
    """The n most recent entries, returned oldest first."""
    if n <= 0:
        return []
    newest_first = sorted(entries, key=lambda e: e.date, reverse=True)[:n]
    return list(reversed(newest_first))


# =============================================================================
# DASHBOARD
# =============================================================================

def build_dashboard(entries: Iterable[Entry], window: Window,
                    category: Optional[str] = None,
                    today: Optional[date] = None) -> Dict:
    """Timeline, category distribution and stat card values for one view."""
    selected = filter_by_window(entries, window, today)
    timeline = build_daily_timeline(selected, category)
    rollup = build_category_rollup(selected, category)

    focused = math.fsum(point['focused'] for point in timeline)
    assigned = math.fsum(point['assigned'] for point in timeline)

    return {
        'timeline': timeline,
        'categories': rank_categories(rollup),
        'stats': {
            'total_focused': focused,
            'total_assigned': assigned,
            'efficiency': efficiency(focused, assigned),
            'total_days': len(selected),
        },
    }


def build_overview(entries: Iterable[Entry], today: Optional[date] = None) -> Dict:
    """Datasets for the analytics page: last 7 logs, all-time split, 14-day trend, heatmap."""
    entries = list(entries)
    last_week = recent_entries(entries, 7)
    return {
        'execution_vs_intention': [
            {'date': e.date, 'focused': total_focused(e), 'assigned': total_assigned(e)}
            for e in last_week
        ],
        'allocation': rank_categories(build_category_rollup(entries)),
        'category_trend': build_category_trend(recent_entries(entries, 14)),
        'heatmap': build_heatmap_series(entries, config.HEATMAP_DAYS, today=today),
        'streak': streak_stats(entries, today),
    }
