"""
Structured JSON Logger for the FocusLog service
One JSON object per line on stdout, ready for Loki/Promtail ingestion
"""

import json
import sys
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import has_request_context, request


class StructuredLogger:
    """
    Structured JSON logger.

    Labels (low cardinality): service, level, event_type
    Context (high cardinality): owner, entry ids, dates, etc.
    """

    def __init__(self, service_name: str = "focuslog"):
        self.service = service_name

    def get_trace_id(self) -> str:
        """Trace ID from the request header, or a fresh one."""
        if has_request_context():
            return request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])
        return str(uuid.uuid4())[:8]

    def _get_request_context(self) -> Dict[str, Any]:
        if has_request_context():
            return {
                "endpoint": request.endpoint,
                "method": request.method,
                "path": request.path,
                "remote_addr": request.remote_addr
            }
        return {}

    def _format_log(
        self,
        level: str,
        event_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        metrics: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None
    ) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": level,
            "service": self.service,
            "event_type": event_type,
            "message": message,
            "trace_id": self.get_trace_id()
        }

        request_ctx = self._get_request_context()
        if request_ctx:
            log_entry["request"] = request_ctx

        if context:
            log_entry["context"] = context
        if metrics:
            log_entry["metrics"] = metrics
        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def _write(self, log_json: str):
        print(log_json, file=sys.stdout, flush=True)

    # =========================================================================
    # Core logging methods
    # =========================================================================

    def info(self, event_type: str, message: str,
             context: Dict = None, metrics: Dict = None):
        self._write(self._format_log("INFO", event_type, message, context, metrics))

    def warning(self, event_type: str, message: str,
                context: Dict = None, metrics: Dict = None):
        self._write(self._format_log("WARNING", event_type, message, context, metrics))

    def error(self, event_type: str, message: str,
              context: Dict = None, error: Dict = None, exception: Exception = None,
              metrics: Dict = None):
        """Log ERROR level event with optional exception details."""
        error_dict = dict(error or {})
        if exception:
            error_dict.update({
                "type": type(exception).__name__,
                "message": str(exception),
                "traceback": traceback.format_exc()
            })
        self._write(self._format_log("ERROR", event_type, message, context, metrics,
                                     error=error_dict or None))

    def debug(self, event_type: str, message: str,
              context: Dict = None, metrics: Dict = None):
        self._write(self._format_log("DEBUG", event_type, message, context, metrics))

    # =========================================================================
    # Business event helpers
    # =========================================================================

    def user_registered(self, user_id: str):
        self.info(
            event_type="USER_REGISTERED",
            message="New user registered",
            context={"user_id": user_id}
        )

    def entry_logged(self, owner: str, entry_id: str, date: str,
                     sessions_count: int, focused_hours: float, source: str = "form"):
        """Log a create-or-merge of a day's entry."""
        self.info(
            event_type="ENTRY_LOGGED",
            message=f"Entry logged for {date} ({source})",
            context={
                "owner": owner,
                "entry_id": entry_id,
                "date": date,
                "source": source
            },
            metrics={
                "sessions_count": sessions_count,
                "focused_hours": round(focused_hours, 2)
            }
        )

    def entry_replaced(self, owner: str, entry_id: str, sessions_count: int):
        self.info(
            event_type="ENTRY_REPLACED",
            message=f"Entry {entry_id} overwritten",
            context={"owner": owner, "entry_id": entry_id},
            metrics={"sessions_count": sessions_count}
        )

    def entry_deleted(self, owner: str, entry_id: str):
        self.info(
            event_type="ENTRY_DELETED",
            message=f"Entry {entry_id} deleted",
            context={"owner": owner, "entry_id": entry_id}
        )

    def timer_event(self, event: str, owner: str = None, track: str = None,
                    elapsed_seconds: int = None):
        """Log a live timer state change."""
        self.info(
            event_type="TIMER",
            message=f"Timer: {event}",
            context={
                "event": event,
                "owner": owner,
                "track": track
            },
            metrics={"elapsed_seconds": elapsed_seconds} if elapsed_seconds is not None else None
        )

    def streak_update(self, owner: str, current_streak: int, longest_streak: int):
        self.info(
            event_type="STREAK_UPDATE",
            message=f"Streak: {current_streak} days",
            context={"owner": owner},
            metrics={
                "current_streak": current_streak,
                "longest_streak": longest_streak
            }
        )

    def ai_request(self, provider: str, model: str, success: bool,
                   latency_ms: int, error_type: str = None):
        """Log an LLM call made by the summary adapter."""
        level = "INFO" if success else "WARNING"
        self._write(self._format_log(
            level=level,
            event_type="AI_REQUEST",
            message=f"AI summary via {provider}: {'success' if success else 'failed'}",
            context={
                "provider": provider,
                "model": model,
                "success": success,
                "error_type": error_type
            },
            metrics={"latency_ms": latency_ms}
        ))

    def api_error(self, endpoint: str, error_type: str,
                  error_message: str, status_code: int = 500):
        self.error(
            event_type="API_ERROR",
            message=f"API error on {endpoint}: {error_type}",
            context={
                "endpoint": endpoint,
                "status_code": status_code
            },
            error={
                "type": error_type,
                "message": error_message
            }
        )

    def websocket_event(self, event: str, client_count: int = None):
        self.debug(
            event_type="WEBSOCKET",
            message=f"WebSocket: {event}",
            context={"event": event},
            metrics={"active_clients": client_count} if client_count is not None else None
        )


# Singleton instance
logger = StructuredLogger("focuslog")
