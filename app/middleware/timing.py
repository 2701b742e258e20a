"""
Request timing middleware.

Every API response carries X-Request-ID and X-Request-Duration-Ms.  One log
line per request is emitted at DEBUG, or WARNING above SLOW_THRESHOLD_MS, or
ERROR for 5xx.  Requests addressed to a ticket or reprint request carry
subject_type / subject_id so slow approval calls can be traced back to the
record they touched.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_SKIP_LOG = frozenset({"/api/v1/health"})

SLOW_THRESHOLD_MS = 1000

# view arg -> subject_type for the subject CRUD routes
_SUBJECT_ARGS = {"tid": "ticket", "rid": "reprint_request"}


def _subject_context() -> dict:
    """subject_type / subject_id taken from the matched route, if any."""
    args = request.view_args or {}
    if "sid" in args and "subject_type" in args:
        return {"subject_type": args["subject_type"], "subject_id": args["sid"]}
    if request.blueprint == "subject":
        for arg, subject_type in _SUBJECT_ARGS.items():
            if arg in args:
                return {"subject_type": subject_type, "subject_id": args[arg]}
    return {}


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = g.get("request_start")
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.get("request_id", "")

        if request.path in _SKIP_LOG or request.path.startswith("/static"):
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 1),
            "remote_addr": request.remote_addr,
            "request_id": g.get("request_id", ""),
            "user_id": g.get("current_user_id"),
            **_subject_context(),
        }
        if duration_ms > SLOW_THRESHOLD_MS:
            level, label = logging.WARNING, "Slow request"
        elif response.status_code >= 500:
            level, label = logging.ERROR, "Server error"
        else:
            level, label = logging.DEBUG, "Request"
        logger.log(level, "%s: %s %s %d (%.0fms)", label,
                   request.method, request.path, response.status_code, duration_ms, extra=extra)
        return response
