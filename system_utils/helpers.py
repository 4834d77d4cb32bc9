"""
Helper functions for system_utils package.
Pure utility functions with minimal dependencies.

Dependencies: state (for task tracking)
"""
from __future__ import annotations
import asyncio
import base64
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Callable, Any

from . import state
from logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# Thread Executor for Blocking Operations
# =============================================================================
# osascript calls, HTTP requests, Pillow decoding and disk I/O all run here so
# the event loop (the only place state is mutated) never blocks.

_thread_executor: Optional[ThreadPoolExecutor] = None


def _get_daemon_executor() -> ThreadPoolExecutor:
    """Get or create the thread executor for blocking operations."""
    global _thread_executor
    if _thread_executor is None:
        _thread_executor = ThreadPoolExecutor(
            max_workers=8,
            thread_name_prefix="Notchtify_Worker"
        )
    return _thread_executor


async def run_in_daemon_executor(func: Callable, *args: Any) -> Any:
    """
    Run a blocking function in the shared worker pool.

    Args:
        func: Blocking function to run
        *args: Arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_get_daemon_executor(), func, *args)


def shutdown_daemon_executor() -> None:
    """Shutdown the thread executor. Call during app cleanup."""
    global _thread_executor
    if _thread_executor is not None:
        # wait=False ensures we don't block if an osascript call is hung
        _thread_executor.shutdown(wait=False, cancel_futures=True)
        _thread_executor = None


def create_tracked_task(coro) -> asyncio.Task:
    """
    Create a background task with automatic cleanup and error logging.
    Prevents silent failures and ensures tasks complete even if references are lost.
    """
    task = asyncio.create_task(coro)
    state._background_tasks.add(task)

    def cleanup(t):
        state._background_tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc}", exc_info=exc)

    task.add_done_callback(cleanup)
    return task


# =============================================================================
# Cache keys
# =============================================================================

def normalize_cache_key(track: str, artist: str) -> str:
    """
    Build the cache identity for a (track, artist) pair.

    Both parts are trimmed and lowercased, so pairs that differ only in case
    or surrounding whitespace share a key across every cache tier.
    """
    clean_track = (track or "").strip().lower()
    clean_artist = (artist or "").strip().lower()
    return f"{clean_track}-{clean_artist}"


def cache_file_name(key: str) -> str:
    """Filesystem-safe file name for a cache key (base64url of UTF-8, .png)."""
    encoded = base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")
    return f"{encoded}.png"
