from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Sequence

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn

from ..clients.gemini import GeminiClient
from ..errors import GenerationError
from ..tracker import OperationTracker, SleepFunc
from ..types import Operation, OperationStatus, VideoResult

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SceneJob:
    """One video job in a batch, identified by name."""

    name: str
    prompt: str
    aspect_ratio: str = "9:16"


@dataclass(frozen=True, slots=True)
class SceneOutcome:
    name: str
    result: VideoResult | None = None
    error: GenerationError | None = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class SceneBatchRunner:
    """
    Render several scenes concurrently, one independent tracker per scene.

    The runner only observes tracker snapshots to report aggregate progress; each job
    keeps its own Operation and a failure in one scene never affects the others.
    """

    def __init__(
        self,
        client: GeminiClient,
        console: Console | None = None,
        show_progress: bool = True,
        cancel_event: asyncio.Event | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self._client = client
        self._console = console or Console()
        self._show_progress = show_progress
        self._cancel_event = cancel_event
        self._sleep = sleep
        self._statuses: dict[str, OperationStatus] = {}

    def status_counts(self) -> Counter[OperationStatus]:
        return Counter(self._statuses.values())

    async def _render(self, job: SceneJob, progress: Progress, task_id: TaskID) -> SceneOutcome:
        def on_update(snapshot: Operation) -> None:
            self._statuses[job.name] = snapshot.status
            counts = self.status_counts()
            progress.update(
                task_id,
                description=(
                    f"{counts[OperationStatus.DONE]} done, {counts[OperationStatus.POLLING]} rendering, "
                    f"{counts[OperationStatus.FAILED]} failed"
                ),
            )

        try:
            operation = await self._client.start_video_generation(job.prompt, job.aspect_ratio)
            self._statuses[job.name] = operation.status
            tracker = OperationTracker.from_config(
                self._client,
                operation,
                self._client.config,
                cancel_event=self._cancel_event,
                on_update=on_update,
                sleep=self._sleep,
            )
            result = await tracker.run()
            return SceneOutcome(name=job.name, result=result)
        except GenerationError as exc:
            self._statuses[job.name] = OperationStatus.FAILED
            log.warning("Scene %s failed: %s", job.name, exc)
            return SceneOutcome(name=job.name, error=exc)
        finally:
            progress.advance(task_id)

    async def run(self, jobs: Sequence[SceneJob]) -> list[SceneOutcome]:
        """Render every job; outcomes are returned in job order."""
        jobs_list = list(jobs)
        names = [job.name for job in jobs_list]
        if len(set(names)) != len(names):
            raise ValueError("Scene job names must be unique within a batch")

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold]Veo[/bold]"),
            TextColumn("{task.description}"),
            TimeElapsedColumn(),
            console=self._console,
            transient=True,
            disable=not self._show_progress,
        ) as progress:
            task_id = progress.add_task("queued", total=len(jobs_list))
            outcomes = await asyncio.gather(*(self._render(job, progress, task_id) for job in jobs_list))

        succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
        if self._show_progress:
            self._console.print(f"[green]{succeeded}[/green]/{len(outcomes)} scenes rendered")
        return list(outcomes)
