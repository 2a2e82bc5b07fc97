from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import FakeGemini, no_sleep
from content_studio.clients.gemini import GeminiClient
from content_studio.errors import OperationCancelled, OperationFailure, OperationTimeout
from content_studio.tracker import OperationTracker, track_video
from content_studio.types import Operation, OperationStatus

VIDEO_PATH = "models/veo-3.1-fast-generate-preview:predictLongRunning"
OPERATION = "models/veo-3.1-fast-generate-preview/operations/op-9"
RUNNING = {"name": OPERATION, "done": False}
FINISHED = {"name": OPERATION, "done": True, "response": {"generatedVideos": [{"video": {"uri": "X"}}]}}


def test_three_pending_polls_then_done(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("POST", VIDEO_PATH, {"name": OPERATION})
    fake_service.on("GET", OPERATION, RUNNING, RUNNING, RUNNING, FINISHED)
    snapshots: list[Operation] = []
    sleeps: list[float] = []

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def scenario():
        operation = await client.start_video_generation("Slow pan over the product", "9:16")
        assert operation.status is OperationStatus.INITIATED
        tracker = OperationTracker(
            client, operation, poll_interval=10.0, on_update=snapshots.append, sleep=record_sleep
        )
        return tracker, await tracker.run()

    tracker, result = asyncio.run(scenario())

    assert [snapshot.status for snapshot in snapshots] == [
        OperationStatus.POLLING,
        OperationStatus.POLLING,
        OperationStatus.POLLING,
        OperationStatus.POLLING,
        OperationStatus.DONE,
    ]
    assert result.operation.status is OperationStatus.DONE
    assert result.operation.result_location == "X"
    assert result.operation.polls == 4
    assert result.download_url == "X?key=test-key"
    assert tracker.history[0] is OperationStatus.INITIATED
    assert sleeps == [10.0, 10.0, 10.0, 10.0]


def test_failed_job_raises_with_final_snapshot(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, RUNNING, {"done": True, "error": {"message": "quota exceeded"}})
    tracker = OperationTracker(client, Operation(handle=OPERATION), sleep=no_sleep)

    with pytest.raises(OperationFailure) as excinfo:
        asyncio.run(tracker.run())

    assert excinfo.value.operation.status is OperationStatus.FAILED
    assert excinfo.value.operation.error == "quota exceeded"
    assert excinfo.value.operation.result_location is None


def test_poll_exception_moves_to_failed(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, RUNNING, httpx.Response(500, json={"error": {"message": "backend down"}}))
    tracker = OperationTracker(client, Operation(handle=OPERATION), sleep=no_sleep)

    with pytest.raises(OperationFailure) as excinfo:
        asyncio.run(tracker.run())

    assert tracker.operation.status is OperationStatus.FAILED
    assert "backend down" in excinfo.value.operation.error
    assert tracker.history[-1] is OperationStatus.FAILED
    assert tracker.history.count(OperationStatus.FAILED) == 1


def test_resolve_not_called_for_failed_job(
    client: GeminiClient, fake_service: FakeGemini, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_service.on("GET", OPERATION, {"done": True, "response": {}})
    calls: list[Operation] = []
    monkeypatch.setattr(client, "resolve_download_url", calls.append)
    tracker = OperationTracker(client, Operation(handle=OPERATION), sleep=no_sleep)

    with pytest.raises(OperationFailure):
        asyncio.run(tracker.run())

    assert calls == []


def test_max_attempts_ends_in_timeout(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, RUNNING)
    tracker = OperationTracker(client, Operation(handle=OPERATION), max_attempts=3, sleep=no_sleep)

    with pytest.raises(OperationTimeout) as excinfo:
        asyncio.run(tracker.run())

    assert excinfo.value.operation.status is OperationStatus.FAILED
    assert excinfo.value.operation.polls == 3
    assert len(fake_service.requests) == 3


def test_cancel_event_stops_polling(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, RUNNING)

    async def scenario():
        cancel = asyncio.Event()

        def on_update(snapshot: Operation) -> None:
            if snapshot.polls >= 2:
                cancel.set()

        tracker = OperationTracker(
            client, Operation(handle=OPERATION), cancel_event=cancel, on_update=on_update, sleep=no_sleep
        )
        await tracker.run()

    with pytest.raises(OperationCancelled) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.operation.status is OperationStatus.FAILED
    assert excinfo.value.operation.error == "polling cancelled"
    assert len(fake_service.requests) == 2


def test_status_never_moves_backward(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, RUNNING, FINISHED)
    tracker = OperationTracker(client, Operation(handle=OPERATION), sleep=no_sleep)

    asyncio.run(tracker.run())

    order = [OperationStatus.INITIATED, OperationStatus.POLLING, OperationStatus.DONE]
    ranks = [order.index(status) for status in tracker.history]
    assert ranks == sorted(ranks)


def test_tracker_requires_initiated_operation(client: GeminiClient) -> None:
    with pytest.raises(ValueError):
        OperationTracker(client, Operation(handle=OPERATION, status=OperationStatus.POLLING))


def test_concurrent_trackers_do_not_interfere(client: GeminiClient, fake_service: FakeGemini) -> None:
    first = "models/veo-3.1-fast-generate-preview/operations/a"
    second = "models/veo-3.1-fast-generate-preview/operations/b"
    fake_service.on("GET", first, {"done": False}, {"done": True, "response": {"generatedVideos": [{"video": {"uri": "https://v/a"}}]}})
    fake_service.on("GET", second, {"done": True, "error": {"message": "blocked"}})

    async def scenario():
        trackers = [
            OperationTracker(client, Operation(handle=first), sleep=no_sleep),
            OperationTracker(client, Operation(handle=second), sleep=no_sleep),
        ]
        return await asyncio.gather(*(tracker.run() for tracker in trackers), return_exceptions=True)

    done, failed = asyncio.run(scenario())

    assert done.operation.result_location == "https://v/a"
    assert isinstance(failed, OperationFailure)
    assert failed.operation.handle == second


def test_track_video_uses_configured_bounds(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("POST", VIDEO_PATH, {"name": OPERATION})
    fake_service.on("GET", OPERATION, FINISHED)

    result = asyncio.run(track_video(client, "prompt", "16:9", sleep=no_sleep))

    assert result.operation.status is OperationStatus.DONE
    assert fake_service.body(0)["parameters"]["aspectRatio"] == "16:9"


def test_malformed_status_moves_to_failed(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, {"done": True, "response": ["unexpected"]})
    tracker = OperationTracker(client, Operation(handle=OPERATION), sleep=no_sleep)

    with pytest.raises(OperationFailure) as excinfo:
        asyncio.run(tracker.run())

    assert tracker.operation.status is OperationStatus.FAILED
    assert excinfo.value.operation.error.startswith("status poll failed")


def test_deadline_ends_in_timeout(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, RUNNING)
    tracker = OperationTracker(
        client, Operation(handle=OPERATION), poll_interval=0.01, timeout=0.05, sleep=asyncio.sleep
    )

    with pytest.raises(OperationTimeout) as excinfo:
        asyncio.run(tracker.run())

    assert excinfo.value.operation.status is OperationStatus.FAILED
    assert excinfo.value.operation.error.startswith("no terminal status after")
    assert tracker.history[-1] is OperationStatus.FAILED
    assert len(fake_service.requests) >= 1


def test_cancel_during_wait_sends_no_further_poll(client: GeminiClient, fake_service: FakeGemini) -> None:
    fake_service.on("GET", OPERATION, FINISHED)

    async def scenario():
        cancel = asyncio.Event()

        async def cancelled_while_sleeping(_seconds: float) -> None:
            cancel.set()
            await asyncio.Event().wait()

        tracker = OperationTracker(
            client, Operation(handle=OPERATION), cancel_event=cancel, sleep=cancelled_while_sleeping
        )
        await tracker.run()

    with pytest.raises(OperationCancelled) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.operation.error == "polling cancelled"
    assert fake_service.requests == []
