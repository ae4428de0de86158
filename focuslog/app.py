"""
FocusLog - Flask Web Application
REST API for daily focus entries, analytics datasets, AI weekly summary and
a Socket.IO live timer.
"""

import math
import time

import psycopg2
from flask import Flask, Response, g, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO, emit
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_flask_exporter import PrometheusMetrics
from pydantic import ValidationError

from focuslog import analytics, config
from focuslog.auth import hash_password, issue_token, login_required, read_token, verify_password
from focuslog.models import database
from focuslog.models.entry import EntryPayload, ReplacePayload, TodoItem, Track
from focuslog.services.ai_summary import AISummaryAdapter
from focuslog.timer import LiveTimer, TimerError
from focuslog.utils.logger import logger
from focuslog.utils.metrics import (
    ACTIVE_TIMERS, ENTRIES_DELETED, ENTRIES_LOGGED, ENTRIES_REPLACED,
    FOCUSED_HOURS, TIMER_EVENTS, app_info,
)

app = Flask(__name__)
app.config['SECRET_KEY'] = config.SECRET_KEY
CORS(app, origins=config.CORS_ORIGINS)
socketio = SocketIO(app, cors_allowed_origins=config.CORS_ORIGINS, async_mode="threading")

# AI Summary Adapter (singleton)
ai_summary = AISummaryAdapter()

# Live timers, one per Socket.IO connection: sid -> (owner, LiveTimer)
timer_sessions = {}
timer_clock = time.monotonic


# =============================================================================
# REQUEST LOGGING MIDDLEWARE
# =============================================================================
@app.before_request
def log_incoming_request():
    if request.path == '/metrics':
        return

    request.start_time = time.time()
    logger.debug("request_received",
                 message="Incoming request",
                 context={
                     "method": request.method,
                     "path": request.path,
                     "query_args": dict(request.args)
                 })


@app.after_request
def log_request_response(response):
    if request.path == '/metrics':
        return response

    duration_ms = None
    if hasattr(request, 'start_time'):
        duration_ms = round((time.time() - request.start_time) * 1000, 2)
    context = {
        "method": request.method,
        "path": request.path,
        "status": response.status_code
    }
    metrics_ctx = {"duration_ms": duration_ms} if duration_ms is not None else None

    if response.status_code >= 500:
        logger.error("request_completed", message="Request completed with server error",
                     context=context, metrics=metrics_ctx)
    elif response.status_code >= 400:
        logger.warning("request_completed", message="Request completed with client error",
                       context=context, metrics=metrics_ctx)
    else:
        logger.info("request_completed", message="Request completed successfully",
                    context=context, metrics=metrics_ctx)
    return response


# =============================================================================
# ERROR HANDLERS
# =============================================================================
@app.errorhandler(ValidationError)
def handle_validation_error(e):
    details = [{'loc': [str(part) for part in err['loc']], 'msg': err['msg']} for err in e.errors()]
    return jsonify({'error': 'Invalid data', 'details': details}), 400


@app.errorhandler(psycopg2.Error)
def handle_database_error(e):
    logger.api_error(request.path, type(e).__name__, str(e), 500)
    return jsonify({'error': 'Server Error'}), 500


# =============================================================================
# PROMETHEUS METRICS
# =============================================================================
metrics = PrometheusMetrics(app, path=None)  # Disable automatic /metrics endpoint


@app.route('/metrics')
def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


app_info.info({
    'version': '1.0',
    'service': 'focuslog',
    'timezone': config.TIMEZONE,
    'ai_provider': config.AI_PROVIDER
})


@app.route('/health')
@metrics.do_not_track()
def health_check():
    return jsonify({'status': 'healthy', 'service': 'focuslog'})


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _public_user(user):
    return {k: v for k, v in user.items() if k != 'password_hash'}


# =============================================================================
# AUTH API
# =============================================================================

@app.route('/api/auth/register', methods=['POST'])
def api_register():
    data = _json_body()
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    username = str(data.get('username', '')).strip()
    password = str(data.get('password', ''))
    if not username or not password:
        return jsonify({'msg': 'Username and password are required'}), 400

    user = database.create_user(username, hash_password(password))
    if user is None:
        return jsonify({'msg': 'User already exists'}), 400

    logger.user_registered(user['id'])
    return jsonify({'token': issue_token(user['id'])})


@app.route('/api/auth/login', methods=['POST'])
def api_login():
    data = _json_body()
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    user = database.get_user_by_username(str(data.get('username', '')).strip())
    if not user or not verify_password(user['password_hash'], str(data.get('password', ''))):
        return jsonify({'msg': 'Invalid Credentials'}), 400

    return jsonify({'token': issue_token(user['id'])})


@app.route('/api/auth/user')
@login_required
def api_load_user():
    user = database.get_user(g.owner)
    if not user:
        return jsonify({'msg': 'User not found'}), 404
    return jsonify(_public_user(user))


@app.route('/api/auth/tracks', methods=['PUT'])
@login_required
def api_update_tracks():
    data = _json_body()
    if not data or not isinstance(data.get('tracks'), list):
        return jsonify({'error': 'tracks list is required'}), 400

    tracks = [Track.model_validate(t) for t in data['tracks']]
    saved = database.update_tracks(g.owner, tracks)
    if saved is None:
        return jsonify({'msg': 'User not found'}), 404
    return jsonify(saved)


@app.route('/api/auth/todos', methods=['PUT'])
@login_required
def api_update_todos():
    data = _json_body()
    if not data or not isinstance(data.get('todos'), list):
        return jsonify({'error': 'todos list is required'}), 400

    todos = [TodoItem.model_validate(t) for t in data['todos']]
    saved = database.update_todos(g.owner, todos)
    if saved is None:
        return jsonify({'msg': 'User not found'}), 404
    return jsonify(saved)


@app.route('/api/auth/update', methods=['PUT'])
@login_required
def api_update_user():
    """Update user details (tracks & topics)"""
    data = _json_body() or {}

    if isinstance(data.get('tracks'), list):
        tracks = [Track.model_validate(t) for t in data['tracks']]
        if database.update_tracks(g.owner, tracks) is None:
            return jsonify({'msg': 'User not found'}), 404

    user = database.get_user(g.owner)
    if not user:
        return jsonify({'msg': 'User not found'}), 404
    return jsonify({'user': {'id': user['id'], 'username': user['username'], 'tracks': user['tracks']}})


# =============================================================================
# FOCUS ENTRY API
# =============================================================================

@app.route('/api/focus', methods=['POST'])
@login_required
def api_log_entry():
    """Log sessions for a day, merging into the day's entry if it exists"""
    data = _json_body()
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    payload = EntryPayload.model_validate(data)
    entry = database.upsert_merge(g.owner, payload.date, payload.sessions, payload.notes)

    ENTRIES_LOGGED.labels(source='form').inc()
    for session in payload.sessions:
        FOCUSED_HOURS.observe(session.focused)
    logger.entry_logged(
        owner=g.owner,
        entry_id=entry.id,
        date=entry.date,
        sessions_count=len(entry.sessions),
        focused_hours=analytics.total_focused(entry)
    )
    return jsonify(entry.to_dict())


@app.route('/api/focus')
@login_required
def api_list_entries():
    """All of the user's entries, newest first"""
    return jsonify([e.to_dict() for e in database.list_all(g.owner)])


@app.route('/api/focus/<entry_id>', methods=['PUT'])
@login_required
def api_replace_entry(entry_id):
    """Overwrite a specific entry (manual corrections)"""
    data = _json_body()
    if data is None:
        return jsonify({'error': 'No data provided'}), 400

    payload = ReplacePayload.model_validate(data)
    entry = database.replace(g.owner, entry_id, payload.sessions, payload.notes)
    if entry is None:
        return jsonify({'msg': 'Log not found'}), 404

    ENTRIES_REPLACED.inc()
    logger.entry_replaced(g.owner, entry.id, len(entry.sessions))
    return jsonify(entry.to_dict())


@app.route('/api/focus/<entry_id>', methods=['DELETE'])
@login_required
def api_delete_entry(entry_id):
    if not database.delete_by_id(g.owner, entry_id):
        return jsonify({'msg': 'Log not found'}), 404

    ENTRIES_DELETED.inc()
    logger.entry_deleted(g.owner, entry_id)
    return jsonify({'msg': 'Entry removed'})


# =============================================================================
# ANALYTICS API
# =============================================================================

@app.route('/api/analytics/streak')
@login_required
def api_streak():
    stats = analytics.streak_stats(database.list_all(g.owner))
    logger.streak_update(g.owner, stats['current_streak'], stats['longest_streak'])
    return jsonify(stats)


@app.route('/api/analytics/heatmap')
@login_required
def api_heatmap():
    try:
        days = int(request.args.get('days', config.HEATMAP_DAYS))
        cap = float(request.args.get('cap', config.HEATMAP_CAP_HOURS))
    except ValueError:
        return jsonify({'error': 'days must be an integer and cap a number'}), 400
    if not math.isfinite(cap):
        return jsonify({'error': 'cap must be a finite number'}), 400
    if days < 0 or days > 3650:
        return jsonify({'error': 'days must be between 0 and 3650'}), 400

    series = analytics.build_heatmap_series(database.list_all(g.owner), days, cap_hours=cap)
    return jsonify({'days': days, 'cap_hours': cap, 'series': series})


@app.route('/api/analytics/dashboard')
@login_required
def api_dashboard():
    """Timeline, category split and stat cards for a time range and category"""
    window = analytics.parse_window(
        request.args.get('range'),
        request.args.get('start'),
        request.args.get('end')
    )
    category = request.args.get('category') or analytics.ALL_CATEGORIES
    entries = database.list_all(g.owner)

    result = analytics.build_dashboard(entries, window, category)
    result['available_categories'] = [analytics.ALL_CATEGORIES] + analytics.available_categories(entries)
    result['category'] = category
    return jsonify(result)


@app.route('/api/analytics/overview')
@login_required
def api_overview():
    return jsonify(analytics.build_overview(database.list_all(g.owner)))


# =============================================================================
# AI API
# =============================================================================

@app.route('/api/ai/analyze', methods=['POST'])
@login_required
def api_ai_analyze():
    """Coaching summary of the latest week; falls back to static text on failure"""
    entries = database.list_recent(g.owner, config.AI_SUMMARY_DAYS)
    return jsonify({'advice': ai_summary.summarize(entries)})


# =============================================================================
# WEBSOCKET - LIVE TIMER
# =============================================================================

def _current_timer():
    return timer_sessions.get(request.sid, (None, None))


def _track_topic(owner, track_name):
    """Current topic configured for a track, None if unknown."""
    user = database.get_user(owner)
    for track in (user or {}).get('tracks', []):
        if track.get('name') == track_name:
            return track.get('currentTopic')
    return None


def _emit_timer_error(error):
    emit('timer_error', {'success': False, 'error': str(error)})


@socketio.on('connect')
def handle_connect(auth=None):
    """Client connected - requires a token in the auth payload"""
    token = (auth or {}).get('token') if isinstance(auth, dict) else None
    owner = read_token(token or request.args.get('token'))
    if owner is None:
        return False

    timer_sessions[request.sid] = (owner, LiveTimer(clock=timer_clock))
    ACTIVE_TIMERS.inc()
    logger.websocket_event('connect', len(timer_sessions))
    emit('connected', {'status': 'connected'})


@socketio.on('disconnect')
def handle_disconnect(*args):
    if timer_sessions.pop(request.sid, None) is not None:
        ACTIVE_TIMERS.dec()
    logger.websocket_event('disconnect', len(timer_sessions))


@socketio.on('timer_start')
def handle_timer_start(data=None):
    owner, timer = _current_timer()
    if timer is None:
        return
    data = data if isinstance(data, dict) else {}
    track = data.get('track')
    topic = data.get('topic')
    if not topic and isinstance(track, str):
        topic = _track_topic(owner, track)

    try:
        timer.start(track, topic)
    except TimerError as e:
        _emit_timer_error(e)
        return
    TIMER_EVENTS.labels(event='start').inc()
    logger.timer_event('start', owner, track)
    emit('timer_status', timer.status())


@socketio.on('timer_pause')
def handle_timer_pause(data=None):
    _timer_transition('pause')


@socketio.on('timer_resume')
def handle_timer_resume(data=None):
    _timer_transition('resume')


@socketio.on('timer_discard')
def handle_timer_discard(data=None):
    _timer_transition('discard')


def _timer_transition(action):
    owner, timer = _current_timer()
    if timer is None:
        return
    track = timer.track
    try:
        getattr(timer, action)()
    except TimerError as e:
        _emit_timer_error(e)
        return
    TIMER_EVENTS.labels(event=action).inc()
    logger.timer_event(action, owner, track, timer.elapsed_seconds())
    emit('timer_status', timer.status())


@socketio.on('timer_status')
def handle_timer_status(data=None):
    _, timer = _current_timer()
    if timer is not None:
        emit('timer_status', timer.status())


@socketio.on('timer_commit')
def handle_timer_commit(data=None):
    """Log the running session into today's entry"""
    owner, timer = _current_timer()
    if timer is None:
        return
    track = timer.track
    committed = []

    def submit(entry_date, sessions):
        committed.extend(sessions)
        return database.upsert_merge(owner, entry_date, sessions)

    try:
        entry = timer.commit(submit)
    except TimerError as e:
        _emit_timer_error(e)
        return
    except ValidationError as e:
        logger.warning("TIMER", "Timer session rejected", context={"owner": owner, "track": str(track)})
        _emit_timer_error(e)
        return
    except psycopg2.Error as e:
        logger.error("TIMER", "Timer commit failed to sync", context={"owner": owner}, exception=e)
        emit('timer_error', {'success': False, 'error': 'Sync Failed'})
        return

    hours = committed[0].focused
    elapsed = int(round(hours * 3600))
    ENTRIES_LOGGED.labels(source='timer').inc()
    FOCUSED_HOURS.observe(hours)
    TIMER_EVENTS.labels(event='commit').inc()
    logger.timer_event('commit', owner, track, elapsed)
    logger.entry_logged(owner, entry.id, entry.date, len(entry.sessions),
                        analytics.total_focused(entry), source='timer')

    emit('session_logged', {
        'success': True,
        'hours': round(hours, 2),
        'track': track,
        'entry': entry.to_dict()
    })
    emit('timer_status', timer.status())


def main():
    print("\n" + "=" * 50)
    print("  FOCUSLOG")
    print("=" * 50)

    if database.init_db():
        print("  Database: Connected")
        logger.info("STARTUP", "Database connected", {"db_type": "PostgreSQL"})
    else:
        print("  Database: Connection failed")

    print(f"  Calendar zone: {config.TIMEZONE}")
    print(f"  AI provider: {config.AI_PROVIDER}")
    print(f"\n  API on: http://localhost:{config.PORT}")
    print("=" * 50 + "\n")

    try:
        socketio.run(app, host='0.0.0.0', port=config.PORT, allow_unsafe_werkzeug=True)
    finally:
        database.close_pool()


if __name__ == '__main__':
    main()
