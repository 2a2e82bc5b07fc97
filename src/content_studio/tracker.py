from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Dict, FrozenSet, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_never,
    stop_when_event_set,
    wait_fixed,
)
from tenacity.stop import stop_base

from .clients.gemini import GeminiClient
from .config import GeminiConfig
from .errors import GenerationError, OperationCancelled, OperationFailure, OperationTimeout
from .types import Operation, OperationStatus, VideoResult

log = logging.getLogger(__name__)

UpdateCallback = Callable[[Operation], None]
SleepFunc = Callable[[float], Awaitable[None]]

_ALLOWED_TRANSITIONS: Dict[OperationStatus, FrozenSet[OperationStatus]] = {
    OperationStatus.INITIATED: frozenset({OperationStatus.POLLING, OperationStatus.FAILED}),
    OperationStatus.POLLING: frozenset(
        {OperationStatus.POLLING, OperationStatus.DONE, OperationStatus.FAILED}
    ),
    OperationStatus.DONE: frozenset(),
    OperationStatus.FAILED: frozenset(),
}


class OperationTracker:
    """
    Drive one video job from INITIATED to DONE or FAILED.

    The tracker owns its Operation snapshot; nothing else advances it. Polls are spaced
    by a fixed delay. Optional bounds (attempt count, elapsed time) and a cancellation
    event end the job in FAILED instead of polling forever.
    """

    def __init__(
        self,
        client: GeminiClient,
        operation: Operation,
        *,
        poll_interval: float = 10.0,
        max_attempts: int | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
        on_update: UpdateCallback | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        if operation.status is not OperationStatus.INITIATED:
            raise ValueError(f"Tracker must start from INITIATED, got {operation.status.value}")
        self._client = client
        self._operation = operation
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._timeout = timeout
        self._cancel_event = cancel_event
        self._on_update = on_update
        self._sleep = sleep or asyncio.sleep
        self._history: list[OperationStatus] = [operation.status]

    @classmethod
    def from_config(cls, client: GeminiClient, operation: Operation, config: GeminiConfig, **kwargs) -> "OperationTracker":
        kwargs.setdefault("poll_interval", config.poll_interval_seconds)
        kwargs.setdefault("max_attempts", config.max_poll_attempts)
        kwargs.setdefault("timeout", config.poll_timeout_seconds)
        return cls(client, operation, **kwargs)

    @property
    def operation(self) -> Operation:
        return self._operation

    @property
    def history(self) -> tuple[OperationStatus, ...]:
        """Every status the job has passed through, in order."""
        return tuple(self._history)

    def _transition(self, snapshot: Operation) -> None:
        current = self._operation.status
        if snapshot.status not in _ALLOWED_TRANSITIONS[current]:
            raise RuntimeError(
                f"Illegal operation transition {current.value} -> {snapshot.status.value} "
                f"for {snapshot.handle}"
            )
        if snapshot.status is not current:
            log.info("Video job %s: %s -> %s", snapshot.handle, current.value, snapshot.status.value)
        self._operation = snapshot
        self._history.append(snapshot.status)
        if self._on_update is not None:
            self._on_update(snapshot)

    def _fail(self, message: str) -> Operation:
        failed = replace(self._operation, status=OperationStatus.FAILED, error=message)
        self._transition(failed)
        log.warning("Video job %s failed: %s", failed.handle, message)
        return failed

    def _stop_condition(self) -> stop_base:
        stop: stop_base = stop_never
        if self._max_attempts is not None:
            # the first attempt only records acceptance; polls start with the second
            stop = stop | stop_after_attempt(self._max_attempts + 1)
        if self._timeout is not None:
            stop = stop | stop_after_delay(self._timeout)
        if self._cancel_event is not None:
            stop = stop | stop_when_event_set(self._cancel_event)
        return stop

    async def _wait(self, seconds: float) -> None:
        """Sleep between polls, returning early once the cancellation event is set."""
        if self._cancel_event is None:
            await self._sleep(seconds)
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        cancelled = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            cancelled.cancel()
        if sleeper.done() and not sleeper.cancelled():
            sleeper.result()

    async def _advance(self) -> Operation:
        if self._cancel_event is not None and self._cancel_event.is_set():
            # no further status requests once cancelled; the stop condition ends the run
            return self._operation
        if self._operation.status is OperationStatus.INITIATED:
            self._transition(replace(self._operation, status=OperationStatus.POLLING))
            return self._operation
        try:
            snapshot = await self._client.poll_operation(self._operation)
        except GenerationError as exc:
            return self._fail(f"status poll failed: {exc}")
        self._transition(snapshot)
        return snapshot

    async def run(self) -> VideoResult:
        """
        Poll until the job is terminal.

        Returns the finished job with its download URL. Raises ``OperationFailure``
        (or ``OperationTimeout`` / ``OperationCancelled``) with the final snapshot
        when the job does not succeed.
        """
        retrying = AsyncRetrying(
            wait=wait_fixed(self._poll_interval),
            stop=self._stop_condition(),
            retry=retry_if_result(lambda snapshot: not snapshot.is_terminal),
            sleep=self._wait,
        )
        try:
            final = await retrying(self._advance)
        except RetryError as exc:
            if self._cancel_event is not None and self._cancel_event.is_set():
                failed = self._fail("polling cancelled")
                raise OperationCancelled(f"Video job {failed.handle} was cancelled", failed) from exc
            failed = self._fail(f"no terminal status after {self._operation.polls} polls")
            raise OperationTimeout(f"Video job {failed.handle} timed out", failed) from exc

        if final.status is OperationStatus.FAILED:
            raise OperationFailure(f"Video job {final.handle} failed: {final.error}", final)

        download_url = self._client.resolve_download_url(final)
        return VideoResult(operation=final, download_url=download_url)


async def track_video(
    client: GeminiClient,
    prompt: str,
    aspect_ratio: str = "9:16",
    *,
    cancel_event: asyncio.Event | None = None,
    on_update: Optional[UpdateCallback] = None,
    sleep: SleepFunc | None = None,
) -> VideoResult:
    """Start a video job and track it to completion using the client's configured bounds."""
    operation = await client.start_video_generation(prompt, aspect_ratio)
    tracker = OperationTracker.from_config(
        client,
        operation,
        client.config,
        cancel_event=cancel_event,
        on_update=on_update,
        sleep=sleep,
    )
    return await tracker.run()
