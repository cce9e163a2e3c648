"""
Timer lifecycle manager: the client-side owner of the user's one timer.

Drives start / tick / pause / resume / stop against the API and keeps the
client's profitability projection current while a timer runs. Pausing stops
the backend timer record and resuming opens a new one; the manager carries
the duration across those segments so one logical session keeps counting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from errors import ConflictError, NetworkError, NotFoundError, TimerAppError, ValidationError
from profitability import Notification, ProfitabilitySnapshot, Projection, ThresholdWatcher, project

logger = logging.getLogger(__name__)

Dispatch = Callable[[str, Dict[str, Any]], None]


class TimerState:
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class TimerSession:
    """One logical timing session, possibly spread over several backend timers."""
    client_id: Optional[str] = None
    task_id: Optional[str] = None
    description: str = ""
    billable: bool = True
    segment_ids: List[str] = field(default_factory=list)
    carried_seconds: int = 0
    segment_seconds: int = 0

    @property
    def timer_id(self) -> Optional[str]:
        return self.segment_ids[-1] if self.segment_ids else None

    @property
    def duration(self) -> int:
        return self.carried_seconds + self.segment_seconds


def format_duration(seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _parse_time(value) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TimerManager:
    """
    Manages the single open timer of the signed-in user.

    States: idle -> running -> idle. A paused session is idle with
    `session` retained; `resume()` continues it, `stop()` commits it.

    `api` is the data-access client (see api_client.ApiClient) and
    `dispatch(action, payload)` pushes updates into the UI state container.

    The manager is synchronous: API calls and the start retry's `sleep` block
    the caller. When ticks come from `run_ticks` on an event loop, call the
    lifecycle methods through `loop.run_in_executor` (or `asyncio.to_thread`)
    so a retrying start does not stall the ticks.
    """

    def __init__(
        self,
        api,
        dispatch: Dispatch,
        sleep: Callable[[float], None] = time.sleep,
        start_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.api = api
        self.dispatch = dispatch
        self.sleep = sleep
        self.start_attempts = start_attempts
        self.retry_delay = retry_delay

        self.state: str = TimerState.IDLE
        self.session: Optional[TimerSession] = None
        self.snapshot: Optional[ProfitabilitySnapshot] = None
        self.projection: Optional[Projection] = None
        self.watcher = ThresholdWatcher()

    # Read-only views

    @property
    def duration(self) -> int:
        return self.session.duration if self.session else 0

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration)

    @property
    def is_paused(self) -> bool:
        return self.state == TimerState.IDLE and self.session is not None

    # Lifecycle

    def start(self, client_id: Optional[str] = None, task_id: Optional[str] = None,
              description: str = "", billable: bool = True) -> Dict[str, Any]:
        """Open a backend timer for a client and/or task and start counting from 0."""
        if not client_id and not task_id:
            self._fail("start", ValidationError("Select a client or a task before starting the timer"))
        if self.state == TimerState.RUNNING:
            self._fail("start", ConflictError("A timer is already running"))
        if self.session is not None:
            self._fail("start", ConflictError("Resume or stop the paused timer first"))

        session = TimerSession(client_id=client_id or None, task_id=task_id or None,
                               description=description, billable=billable)
        try:
            timer = self._create_timer(session)
        except TimerAppError as e:
            self._fail("start", e)

        # The API fills in the client of a task-only timer
        session.client_id = session.client_id or timer.get("client_id")
        session.segment_ids.append(timer["_id"])
        self.session = session
        self.state = TimerState.RUNNING
        logger.info("Timer %s started (client=%s, task=%s)", timer["_id"], session.client_id, session.task_id)

        self._load_profitability(session.client_id)
        self.dispatch("timer/started", {
            "timer_id": timer["_id"],
            "client_id": session.client_id,
            "task_id": session.task_id,
        })
        self._notify(Notification("Timer started", "success"))
        return timer

    def tick(self) -> None:
        """Advance the running timer by one second and refresh the projection."""
        if self.state != TimerState.RUNNING:
            return
        self.session.segment_seconds += 1

        payload: Dict[str, Any] = {"duration": self.duration}
        notification = None
        if self.snapshot is not None:
            self.projection = project(self.snapshot, self.duration)
            payload["projection"] = self.projection.as_dict()
            notification = self.watcher.update(self.projection)

        self.dispatch("timer/tick", payload)
        if notification:
            self._notify(notification)

    def pause(self) -> None:
        """Close the current backend timer and keep the session for resume()."""
        if self.state != TimerState.RUNNING:
            return
        session = self.session
        try:
            self.api.stop_timer(session.timer_id, duration=session.segment_seconds)
        except TimerAppError as e:
            self._fail("pause", e)

        session.carried_seconds += session.segment_seconds
        session.segment_seconds = 0
        self.state = TimerState.IDLE
        logger.info("Timer %s paused at %ss", session.timer_id, session.duration)
        self.dispatch("timer/paused", {"timer_id": session.timer_id, "duration": session.duration})
        self._notify(Notification("Timer paused", "info"))

    def resume(self) -> Optional[Dict[str, Any]]:
        """Open a new backend timer for the paused session; the duration keeps counting."""
        if not self.is_paused:
            return None
        session = self.session
        try:
            timer = self._create_timer(session)
        except TimerAppError as e:
            self._fail("resume", e)

        session.segment_ids.append(timer["_id"])
        self.state = TimerState.RUNNING
        logger.info("Timer resumed as %s from %ss", timer["_id"], session.duration)
        self.dispatch("timer/resumed", {"timer_id": timer["_id"], "duration": session.duration})
        self._notify(Notification("Timer resumed", "success"))
        return timer

    def stop(self) -> int:
        """
        Commit the session and go idle. Returns the committed seconds.

        A no-op returning 0 when there is nothing to stop. The spent-hours
        increment for the client is best effort: a failure is logged and the
        stop stands.
        """
        session = self.session
        if session is None:
            return 0

        if self.state == TimerState.RUNNING:
            try:
                self.api.stop_timer(session.timer_id, duration=session.segment_seconds)
            except TimerAppError as e:
                self._fail("stop", e)

        total = session.duration
        self._reset()
        logger.info("Timer stopped after %ss over %d segment(s)", total, len(session.segment_ids))
        self.dispatch("timer/stopped", {"timer_id": session.timer_id, "duration": total})
        self._notify(Notification("Timer stopped", "success"))

        if session.client_id:
            try:
                self.api.update_spent_hours(session.client_id, total / 3600, increment_only=True)
            except TimerAppError as e:
                logger.error("Could not add %ss to client %s spent hours: %s", total, session.client_id, e)
        return total

    def discard(self) -> None:
        """Throw the session away, deleting the open backend timer without committing hours."""
        session = self.session
        if session is None:
            return
        if self.state == TimerState.RUNNING:
            try:
                self.api.delete_timer(session.timer_id)
            except TimerAppError as e:
                self._fail("discard", e)
        self._reset()
        self.dispatch("timer/stopped", {"timer_id": session.timer_id, "duration": 0})

    def complete_task(self, is_complete: bool = True, task_id: Optional[str] = None) -> Dict[str, Any]:
        """Mark a task done (or back to pending), stopping its running timer first."""
        task_id = task_id or (self.session.task_id if self.session else None)
        if not task_id:
            self._fail("complete_task", ValidationError("No task selected"))

        if is_complete and self.session is not None and self.session.task_id == task_id:
            self.stop()

        try:
            if is_complete:
                result = self.api.complete_task(task_id)
            else:
                result = self.api.update_task(task_id, status="pending")
        except TimerAppError as e:
            self._fail("complete_task", e)

        self.dispatch("tasks/updated", {"task_id": task_id, "completed": is_complete, "result": result})
        if is_complete:
            self._notify(Notification("Task completed", "success"))
        return result

    def restore(self) -> bool:
        """Adopt the user's open backend timer, e.g. after the app was reopened."""
        if self.session is not None:
            return False
        try:
            timer = self.api.get_running_timer()
        except TimerAppError as e:
            logger.error("Could not fetch the running timer: %s", e)
            return False
        if not timer:
            return False

        elapsed = (datetime.now(timezone.utc) - _parse_time(timer["start_time"])).total_seconds()
        self.session = TimerSession(
            client_id=timer.get("client_id"),
            task_id=timer.get("task_id"),
            description=timer.get("description") or "",
            billable=timer.get("billable", True),
            segment_ids=[timer["_id"]],
            segment_seconds=max(0, int(elapsed)),
        )
        self.state = TimerState.RUNNING
        logger.info("Restored running timer %s at %ss", timer["_id"], self.session.duration)
        self._load_profitability(self.session.client_id)
        self.dispatch("timer/started", {
            "timer_id": timer["_id"],
            "client_id": self.session.client_id,
            "task_id": self.session.task_id,
        })
        return True

    # Internals

    def _create_timer(self, session: TimerSession) -> Dict[str, Any]:
        for attempt in range(1, self.start_attempts + 1):
            try:
                return self.api.create_timer(
                    client_id=session.client_id,
                    task_id=session.task_id,
                    description=session.description,
                    billable=session.billable,
                )
            except NetworkError as e:
                if attempt >= self.start_attempts:
                    raise
                logger.warning("Creating timer failed (attempt %d/%d): %s", attempt, self.start_attempts, e)
                self.sleep(self.retry_delay)

    def _load_profitability(self, client_id: Optional[str]) -> None:
        self.snapshot = None
        self.projection = None
        if not client_id:
            return
        try:
            record = self.api.get_profitability(client_id)
        except NotFoundError:
            logger.debug("No profitability data for client %s", client_id)
            return
        except TimerAppError as e:
            logger.error("Could not load profitability for client %s: %s", client_id, e)
            return

        self.snapshot = ProfitabilitySnapshot.from_record(record)
        self.projection = project(self.snapshot, self.duration)
        self.watcher.reset(self.snapshot, self.duration)

    def _reset(self) -> None:
        self.state = TimerState.IDLE
        self.session = None
        self.snapshot = None
        self.projection = None
        self.watcher = ThresholdWatcher()

    def _notify(self, notification: Notification) -> None:
        self.dispatch("notification/add", notification.as_dict())

    def _fail(self, operation: str, error: TimerAppError):
        logger.error("Timer %s failed: %s", operation, error)
        self._notify(Notification(error.message, "error"))
        raise error


async def run_ticks(manager: TimerManager, interval: float = 1.0, max_ticks: Optional[int] = None) -> int:
    """Call manager.tick() every `interval` seconds while it is running. Returns the tick count."""
    ticks = 0
    while manager.state == TimerState.RUNNING:
        await asyncio.sleep(interval)
        manager.tick()
        ticks += 1
        if max_ticks is not None and ticks >= max_ticks:
            break
    return ticks
