"""
Outgoing iMessages via AppleScript, plus in-process deferred sends.

Sending shells out to ``osascript``; the scheduler arms an asyncio timer
task per message on the running event loop. Scheduled sends live only in
memory: a process restart drops anything still pending.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional
from uuid import uuid4

import structlog

from macbridge.config import get_settings
from macbridge.errors import AutomationError, SchedulingError
from macbridge.models import ScheduledMessage

logger = structlog.get_logger()


def escape_applescript(text: str) -> str:
    """Escape a value for use inside an AppleScript string literal."""
    return text.replace("\\", "\\\\").replace('"', '\\"')


def build_send_script(phone_number: str, message: str) -> str:
    return (
        'tell application "Messages"\n'
        "    set targetService to 1st service whose service type = iMessage\n"
        f'    set targetBuddy to buddy "{escape_applescript(phone_number)}" of targetService\n'
        f'    send "{escape_applescript(message)}" to targetBuddy\n'
        "end tell"
    )


class MessageSender:
    """Sends one iMessage per call through osascript."""

    def __init__(self, osascript_path: Optional[str] = None, timeout: Optional[float] = None) -> None:
        settings = get_settings().messages
        self.osascript_path = osascript_path or settings.osascript_path
        self.timeout = timeout if timeout is not None else settings.send_timeout

    async def send(self, phone_number: str, message: str) -> str:
        """Run the send script; returns osascript stdout. Raises AutomationError on failure."""
        script = build_send_script(phone_number, message)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.osascript_path,
                "-e",
                script,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AutomationError(f"Cannot launch {self.osascript_path}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise AutomationError(f"osascript timed out after {self.timeout}s") from e

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            logger.warning("imessage_send_failed", phone=phone_number, returncode=proc.returncode, error=detail)
            raise AutomationError(detail or f"osascript exited with {proc.returncode}")

        logger.info("imessage_sent", phone=phone_number, length=len(message))
        return stdout.decode("utf-8", errors="replace").strip()


class MessageScheduler:
    """
    Deferred sends on the running event loop.

    Each scheduled message is an asyncio task that sleeps until its time,
    sends, and then drops its own handle.
    """

    def __init__(self, sender: Optional[MessageSender] = None) -> None:
        self.sender = sender or MessageSender()
        self._pending: dict[str, tuple[ScheduledMessage, asyncio.Task[None]]] = {}

    def schedule(self, phone_number: str, message: str, scheduled_time: datetime) -> ScheduledMessage:
        """Arm a send for ``scheduled_time``. Naive datetimes are taken as local time."""
        if scheduled_time.tzinfo is None:
            scheduled_time = scheduled_time.astimezone()
        delay = (scheduled_time - datetime.now(timezone.utc)).total_seconds()
        if delay < 0:
            raise SchedulingError("Cannot schedule message in the past")

        scheduled = ScheduledMessage(
            id=uuid4().hex,
            phone_number=phone_number,
            message=message,
            scheduled_time=scheduled_time,
        )
        task = asyncio.get_running_loop().create_task(self._fire(scheduled, delay))
        self._pending[scheduled.id] = (scheduled, task)
        logger.info("imessage_scheduled", id=scheduled.id, phone=phone_number, delay_s=round(delay, 1))
        return scheduled

    async def _fire(self, scheduled: ScheduledMessage, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self.sender.send(scheduled.phone_number, scheduled.message)
        except asyncio.CancelledError:
            logger.info("imessage_schedule_cancelled", id=scheduled.id)
            raise
        except Exception as e:
            logger.error("scheduled_send_failed", id=scheduled.id, error=str(e))
        finally:
            self._pending.pop(scheduled.id, None)

    def cancel(self, scheduled_id: str) -> bool:
        entry = self._pending.pop(scheduled_id, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def pending(self) -> list[ScheduledMessage]:
        return [scheduled for scheduled, _ in self._pending.values()]


@lru_cache(maxsize=1)
def get_scheduler() -> MessageScheduler:
    """Process-wide scheduler instance."""
    return MessageScheduler()
