"""
Completion signals and desktop notifications.

Story and PRD completion signals are emitted at most once: the emitted
ids are stored in the progress record's `signals` list and re-emission is
refused. Desktop notifications use notify-send (freedesktop compliant)
when it is installed.
"""

import logging
import shutil
import subprocess
from typing import Callable, Optional

from storyloop.progress.record import ProgressRecord

logger = logging.getLogger(__name__)

VALID_URGENCIES = ("low", "normal", "critical")
MAX_NOTIFICATION_LENGTH = 200


def notify(title: str, message: str, urgency: str = "normal"):
    """
    Send desktop notification.

    Args:
        title: Notification title
        message: Notification body
        urgency: One of "low", "normal", "critical"
    """
    if urgency not in VALID_URGENCIES:
        logger.warning(f"Invalid urgency '{urgency}', using 'normal'")
        urgency = "normal"

    if not shutil.which("notify-send"):
        logger.debug("notify-send not found, skipping notification")
        return

    try:
        result = subprocess.run([
            "notify-send",
            "--urgency", urgency,
            "--app-name", "storyloop",
            title,
            message
        ], capture_output=True, text=True, timeout=5)

        if result.returncode != 0:
            logger.warning(f"notify-send failed (exit {result.returncode}): {result.stderr}")
    except subprocess.TimeoutExpired:
        logger.warning("notify-send timed out")
    except OSError as e:
        logger.warning(f"Failed to run notify-send: {e}")


def story_signal_id(story_id: str) -> str:
    return f"story:{story_id}"


def prd_signal_id(prd_id: str) -> str:
    return f"prd:{prd_id}"


class Signals:
    """At-most-once completion signals.

    `listener(kind, entity_id)` is called once per emitted signal, with
    kind "story_complete" or "prd_complete".
    """

    def __init__(
        self,
        desktop: bool = True,
        listener: Optional[Callable[[str, str], None]] = None,
    ):
        self.desktop = desktop
        self.listener = listener

    def _emit(self, record: ProgressRecord, signal_id: str, kind: str, entity_id: str) -> bool:
        if not record.add_signal(signal_id):
            logger.debug(f"[SIGNAL] {signal_id} already emitted, ignoring")
            return False
        logger.info(f"[SIGNAL] {kind}: {entity_id}")
        if self.listener:
            self.listener(kind, entity_id)
        return True

    def story_complete(self, record: ProgressRecord, story_id: str) -> bool:
        """Emit "story complete". Returns False if it was already emitted."""
        return self._emit(record, story_signal_id(story_id), "story_complete", story_id)

    def prd_complete(self, record: ProgressRecord, prd_id: str) -> bool:
        emitted = self._emit(record, prd_signal_id(prd_id), "prd_complete", prd_id)
        if emitted and self.desktop:
            notify(f"storyloop: {prd_id}", "All stories complete", "low")
        return emitted

    def blocked(self, story_id: str, reason: str) -> None:
        """Escalate a blocked story to the operator."""
        if len(reason) > MAX_NOTIFICATION_LENGTH:
            reason = reason[:MAX_NOTIFICATION_LENGTH] + "..."
        logger.warning(f"[SIGNAL] blocked: {story_id}: {reason}")
        if self.listener:
            self.listener("blocked", story_id)
        if self.desktop:
            notify(f"storyloop: {story_id}", f"Blocked: {reason}", "critical")
