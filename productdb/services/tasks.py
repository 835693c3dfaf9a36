"""Deferred work dispatcher.

Used for work that must never block or fail the request that triggered
it: audit writes and post-commit file deletion. With
DEFERRED_TASKS_ASYNC on, the task runs in a daemon thread inside its own
app context (own DB session). Off (tests), it runs inline right away.

Either way a failing task is logged and swallowed.
"""

import logging
import threading

from flask import current_app

logger = logging.getLogger(__name__)


def _task_name(func):
    return getattr(func, "__name__", repr(func))


def _run(app, func, args, kwargs):
    with app.app_context():
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception(f"Deferred task {_task_name(func)} failed")


def defer(func, *args, **kwargs):
    """Run func(*args, **kwargs) after the caller's current work.

    Callers dispatch only once their transaction outcome is known.
    """
    app = current_app._get_current_object()

    if not app.config.get("DEFERRED_TASKS_ASYNC", True):
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception(f"Deferred task {_task_name(func)} failed")
        return

    thread = threading.Thread(target=_run, args=(app, func, args, kwargs))
    thread.daemon = True
    thread.start()
