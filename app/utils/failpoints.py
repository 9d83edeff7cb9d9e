"""Release Manager Pipeline - Failpoint injection for resilience testing.

Deterministic crash injection for testing worker crashes mid-upload.
Used to verify that an interrupted upload transaction leaves no half-written
records behind and that the job is picked up again.

Safety gate: failpoints are only active when RM_ENABLE_FAILPOINTS=1.
The default is a complete no-op.

Environment variables:
- RM_ENABLE_FAILPOINTS: Set to "1" to enable the failpoint system
- RM_FAILPOINT: Name of the failpoint to trigger (e.g., "UPLOAD_AFTER_STORE_WRITE")
- RM_FAILPOINT_EXIT_CODE: Exit code to use when crashing (default: 42)

Usage:
    from app.utils.failpoints import maybe_fail

    maybe_fail("UPLOAD_AFTER_STORE_WRITE")
"""

from __future__ import annotations

import os


def maybe_fail(point: str) -> None:
    """Crash the process if ``point`` is the active failpoint.

    Uses os._exit() so that no finally blocks, rollbacks or atexit hooks run,
    which is what a killed worker looks like.

    Args:
        point: The failpoint name (with or without a "FAILPOINT_" prefix).
    """
    if not is_failpoint_enabled():
        return

    target = get_active_failpoint()
    if target is None or _normalize(point) != target:
        return

    try:
        exit_code = int(os.environ.get("RM_FAILPOINT_EXIT_CODE", "42"))
    except ValueError:
        exit_code = 42

    os._exit(exit_code)


def _normalize(point: str) -> str:
    point = point.upper()
    if point.startswith("FAILPOINT_"):
        point = point[len("FAILPOINT_") :]
    return point


def is_failpoint_enabled() -> bool:
    """Check if the failpoint system is enabled."""
    return os.environ.get("RM_ENABLE_FAILPOINTS") == "1"


def get_active_failpoint() -> str | None:
    """Get the currently active failpoint name (without prefix), if any."""
    if not is_failpoint_enabled():
        return None
    target = os.environ.get("RM_FAILPOINT", "")
    if not target:
        return None
    return _normalize(target)
