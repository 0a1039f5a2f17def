"""
Detached (fire-and-forget) side effects.

Notifications that must never affect the outcome of the request that
triggered them are scheduled here. They run after the response is sent,
and any failure is logged and dropped.
"""
import logging
from typing import Any, Callable

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)


def run_detached(label: str, func: Callable[..., Any], *args, **kwargs) -> bool:
    """Run func, logging instead of raising on failure. Returns True on success."""
    try:
        func(*args, **kwargs)
        return True
    except Exception as e:
        logger.error(f"Detached task '{label}' failed: {e}")
        return False


def dispatch_detached(background_tasks: BackgroundTasks, label: str, func: Callable[..., Any], *args, **kwargs):
    background_tasks.add_task(run_detached, label, func, *args, **kwargs)
    logger.debug(f"Detached task '{label}' scheduled")
