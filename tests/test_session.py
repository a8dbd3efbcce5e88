import asyncio

import httpx
import pytest

from recipe_media.models.media_asset import MediaStatus, MediaType
from recipe_media.pipeline.api_client import MediaApiClient
from recipe_media.pipeline.config import PipelineConfig
from recipe_media.pipeline.errors import ProcessingError, TransferRejectedError
from recipe_media.pipeline.session import (
    VALID_TRANSITIONS,
    UploadStateMachine,
    UploadStatus,
)
from recipe_media.schemas.media import UploadTarget

from conftest import make_asset

JPEG = b"\xff\xd8\xff" + b"j" * 2048
MP4 = b"\x00\x00\x00\x18ftypmp42" + b"v" * 4096


class FakeApi:
    """Scripted stand-in for MediaApiClient."""

    def __init__(
        self, poll_statuses=(MediaStatus.READY,), confirm_status=MediaStatus.READY,
        video_protocol="form",
    ):
        self.poll_statuses = list(poll_statuses)
        self.confirm_status = confirm_status
        self.video_protocol = video_protocol
        self.calls: list[tuple] = []
        self.poll_count = 0
        self.poll_gate: tuple[int, asyncio.Event, asyncio.Event] | None = None
        self.request_gate: tuple[asyncio.Event, asyncio.Event] | None = None
        self.confirm_gate: tuple[asyncio.Event, asyncio.Event] | None = None

    async def _hold(self, gate):
        if gate:
            sent, release = gate
            sent.set()
            await release.wait()

    async def request_image_upload(self, context, entity_id=None, original_name=None, **kw):
        self.calls.append(("request_image", str(getattr(context, "value", context)), entity_id))
        await self._hold(self.request_gate)
        return UploadTarget(asset_id="a1", upload_url="https://upload.example.com/a1", provider_asset_id="p1")

    async def request_video_upload(self, context, entity_id=None, original_name=None, **kw):
        self.calls.append(("request_video", str(getattr(context, "value", context)), kw.get("max_duration_seconds")))
        return UploadTarget(
            asset_id="v1", upload_url="https://upload.example.com/video/v1",
            provider_asset_id="p2", upload_protocol=self.video_protocol,
        )

    async def confirm_image_upload(self, asset_id):
        self.calls.append(("confirm", asset_id))
        await self._hold(self.confirm_gate)
        return make_asset(
            self.confirm_status, MediaType.IMAGE, id=asset_id,
            url="https://cdn.example.com/a1.jpg",
            error_message="Image rejected" if self.confirm_status is MediaStatus.ERROR else None,
        )

    async def poll_video_status(self, asset_id):
        self.poll_count += 1
        self.calls.append(("poll", asset_id))
        if self.poll_gate and self.poll_gate[0] == self.poll_count:
            _, sent, release = self.poll_gate
            sent.set()
            await release.wait()
        status = self.poll_statuses[min(self.poll_count, len(self.poll_statuses)) - 1]
        fields = {"duration_seconds": 34} if status is MediaStatus.READY else {}
        return make_asset(status, MediaType.VIDEO, id=asset_id, **fields)

    def names(self):
        return [call[0] for call in self.calls]


class FakeTransfer:
    def __init__(self, fail: Exception | None = None):
        self.fail = fail
        self.uploads: list[str] = []
        self.protocols: list[str | None] = []

    async def _send(self, url, source, sink, protocol=None):
        self.uploads.append(url)
        self.protocols.append(protocol)
        sink.update(0)
        await asyncio.sleep(0)
        if self.fail:
            raise self.fail
        sink.update(40)
        sink.update(30)
        sink.update(100)

    upload_image = _send
    upload_video = _send


def _machine(api, transfer=None, **config):
    config.setdefault("poll_interval", 0)
    return UploadStateMachine(api, transfer or FakeTransfer(), PipelineConfig(**config))


def _record(machine):
    snapshots = []
    machine.subscribe(snapshots.append)
    return snapshots


def _statuses(snapshots):
    out = []
    for snap in snapshots:
        if not out or out[-1] is not snap.status:
            out.append(snap.status)
    return out


async def test_image_upload_reaches_ready():
    api = FakeApi()
    machine = _machine(api)
    snapshots = _record(machine)

    asset = await machine.upload(JPEG, "recipe", "r1", name="pancakes.jpg")

    assert asset is not None and asset.url == "https://cdn.example.com/a1.jpg"
    assert machine.status is UploadStatus.READY
    assert machine.asset == asset
    assert machine.progress == 100
    assert machine.error is None
    assert _statuses(snapshots) == [
        UploadStatus.REQUESTING, UploadStatus.UPLOADING, UploadStatus.CONFIRMING, UploadStatus.READY,
    ]
    assert api.names() == ["request_image", "confirm"]

    progress = [s.progress for s in snapshots]
    assert progress == sorted(progress)
    assert 40 in progress


async def test_video_upload_polls_until_ready():
    api = FakeApi(poll_statuses=[MediaStatus.PROCESSING] * 3 + [MediaStatus.READY])
    machine = _machine(api)
    snapshots = _record(machine)

    asset = await machine.upload(MP4, "step", "s1", name="whisk.mp4")

    assert machine.status is UploadStatus.READY
    assert asset.duration_seconds == 34
    assert api.poll_count == 4
    assert "confirm" not in api.names()
    assert ("request_video", "step", 600) in api.calls
    assert _statuses(snapshots) == [
        UploadStatus.REQUESTING, UploadStatus.UPLOADING, UploadStatus.PROCESSING, UploadStatus.READY,
    ]


async def test_rejected_context_fails_before_any_transfer():
    def handler(request):
        return httpx.Response(400, json={"error": "Validation failed"})

    api = MediaApiClient(
        "https://recipes.example.com/api", "tok",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    transfer = FakeTransfer()
    machine = _machine(api, transfer)
    snapshots = _record(machine)

    result = await machine.upload_image(JPEG, "bogus", name="x.jpg")

    assert result is None
    assert machine.status is UploadStatus.ERROR
    assert machine.error == "Validation failed"
    assert transfer.uploads == []
    assert _statuses(snapshots) == [UploadStatus.REQUESTING, UploadStatus.ERROR]


async def test_transfer_rejection_skips_confirmation():
    api = FakeApi()
    machine = _machine(api, FakeTransfer(fail=TransferRejectedError(413, "Payload Too Large")))

    assert await machine.upload(JPEG, "recipe", name="big.jpg") is None

    assert machine.status is UploadStatus.ERROR
    assert machine.error.startswith("Upload failed with status 413")
    assert api.names() == ["request_image"]


async def test_video_transfer_rejection_never_polls():
    api = FakeApi()
    machine = _machine(api, FakeTransfer(fail=TransferRejectedError(413)))

    await machine.upload(MP4, "recipe", name="big.mp4")

    assert machine.status is UploadStatus.ERROR
    assert api.poll_count == 0


async def test_processing_timeout_is_distinct_from_provider_error():
    stalled = FakeApi(poll_statuses=[MediaStatus.PROCESSING])
    machine = _machine(stalled, poll_max_attempts=120)
    await machine.upload(MP4, "recipe", name="slow.mp4")

    assert machine.status is UploadStatus.ERROR
    assert stalled.poll_count == 120
    assert machine.error == "Video processing timed out"

    failed = FakeApi(poll_statuses=[MediaStatus.ERROR])
    other = _machine(failed)
    await other.upload(MP4, "recipe", name="broken.mp4")

    assert other.status is UploadStatus.ERROR
    assert other.error != machine.error
    assert "timed out" not in other.error


async def test_reset_during_processing_ignores_late_poll_response():
    api = FakeApi(poll_statuses=[MediaStatus.PROCESSING, MediaStatus.PROCESSING, MediaStatus.READY])
    sent, release = asyncio.Event(), asyncio.Event()
    api.poll_gate = (3, sent, release)
    machine = _machine(api)

    task = machine.start(MP4, "recipe", name="clip.mp4")
    await asyncio.wait_for(sent.wait(), timeout=1)
    assert machine.status is UploadStatus.PROCESSING

    machine.reset()
    assert machine.status is UploadStatus.IDLE
    snapshots = _record(machine)

    release.set()
    assert await asyncio.wait_for(task, timeout=1) is None

    assert machine.status is UploadStatus.IDLE
    assert machine.asset is None
    assert machine.error is None
    assert machine.progress == 0
    assert snapshots == []


async def test_reset_during_transfer_drops_progress_updates():
    release = asyncio.Event()
    captured = {}

    class SlowTransfer:
        async def upload_image(self, url, source, sink):
            captured["sink"] = sink
            sink.update(20)
            await release.wait()
            sink.update(90)

    machine = _machine(FakeApi(), SlowTransfer())
    task = machine.start(JPEG, "recipe", name="a.jpg")
    while "sink" not in captured:
        await asyncio.sleep(0)
    assert machine.progress == 20

    machine.reset()
    release.set()
    await task

    assert machine.status is UploadStatus.IDLE
    assert machine.progress == 0


async def test_reset_while_requesting_never_transfers():
    api = FakeApi()
    sent, release = asyncio.Event(), asyncio.Event()
    api.request_gate = (sent, release)
    transfer = FakeTransfer()
    machine = _machine(api, transfer)

    task = machine.start(JPEG, "recipe", name="a.jpg")
    await asyncio.wait_for(sent.wait(), timeout=1)
    assert machine.status is UploadStatus.REQUESTING

    machine.reset()
    snapshots = _record(machine)
    release.set()

    assert await asyncio.wait_for(task, timeout=1) is None
    assert machine.status is UploadStatus.IDLE
    assert transfer.uploads == []
    assert api.names() == ["request_image"]
    assert snapshots == []


async def test_reset_while_confirming_discards_confirmed_asset():
    api = FakeApi()
    sent, release = asyncio.Event(), asyncio.Event()
    api.confirm_gate = (sent, release)
    machine = _machine(api)

    task = machine.start(JPEG, "recipe", name="a.jpg")
    await asyncio.wait_for(sent.wait(), timeout=1)
    assert machine.status is UploadStatus.CONFIRMING
    assert machine.progress == 100

    machine.reset()
    snapshots = _record(machine)
    release.set()

    assert await asyncio.wait_for(task, timeout=1) is None
    assert machine.status is UploadStatus.IDLE
    assert machine.asset is None
    assert machine.progress == 0
    assert snapshots == []


async def test_confirming_starts_at_full_progress():
    class PartialTransfer:
        async def upload_image(self, url, source, sink):
            sink.update(40)

    machine = _machine(FakeApi(), PartialTransfer())
    snapshots = _record(machine)

    await machine.upload(JPEG, "recipe", name="a.jpg")

    confirming = [s for s in snapshots if s.status is UploadStatus.CONFIRMING]
    assert confirming[0].progress == 100
    assert machine.status is UploadStatus.READY


async def test_video_transfer_follows_target_protocol():
    transfer = FakeTransfer()
    machine = _machine(FakeApi(video_protocol="tus"), transfer)

    await machine.upload(MP4, "recipe", name="clip.mp4")

    assert transfer.protocols == ["tus"]
    assert machine.status is UploadStatus.READY


async def test_upload_while_busy_resets_first():
    api = FakeApi()
    machine = _machine(api)
    await machine.upload(JPEG, "recipe", name="first.jpg")
    assert machine.status is UploadStatus.READY

    snapshots = _record(machine)
    await machine.upload(JPEG, "recipe", name="second.jpg")

    assert snapshots[0].status is UploadStatus.IDLE
    assert snapshots[0].asset is None
    assert machine.status is UploadStatus.READY
    assert api.names().count("confirm") == 2


async def test_confirmation_reporting_error_fails_session():
    machine = _machine(FakeApi(confirm_status=MediaStatus.ERROR))

    await machine.upload(JPEG, "recipe", name="a.jpg")

    assert machine.status is UploadStatus.ERROR
    assert machine.error == "Image rejected"


async def test_unsupported_file_type():
    api = FakeApi()
    machine = _machine(api)

    await machine.upload(b"%PDF-1.7", "recipe", name="menu.pdf")

    assert machine.status is UploadStatus.ERROR
    assert "Unsupported file type" in machine.error
    assert api.calls == []


async def test_explicit_media_type_overrides_guess():
    api = FakeApi()
    machine = _machine(api)

    await machine.upload_video(MP4, "recipe")

    assert api.names()[0] == "request_video"


async def test_adopt_existing_ready_asset_without_network():
    api = FakeApi()
    machine = _machine(api)
    asset = make_asset(MediaStatus.READY)

    machine.adopt_existing(asset)

    assert machine.status is UploadStatus.READY
    assert machine.asset == asset
    assert api.calls == []


async def test_adopt_existing_processing_and_error_assets():
    machine = _machine(FakeApi())

    machine.adopt_existing(make_asset(MediaStatus.PROCESSING, MediaType.VIDEO))
    assert machine.status is UploadStatus.PROCESSING
    assert machine.asset is None

    machine.adopt_existing(make_asset(MediaStatus.ERROR, error_message="Corrupt file"))
    assert machine.status is UploadStatus.ERROR
    assert machine.error == "Corrupt file"

    machine.adopt_existing(None)
    assert machine.status is UploadStatus.IDLE


async def test_resume_processing_polls_adopted_asset():
    api = FakeApi(poll_statuses=[MediaStatus.PROCESSING, MediaStatus.READY])
    machine = _machine(api)
    machine.adopt_existing(make_asset(MediaStatus.PROCESSING, MediaType.VIDEO, id="v9"))

    asset = await machine.resume_processing()

    assert asset.id == "v9"
    assert machine.status is UploadStatus.READY
    assert api.calls == [("poll", "v9"), ("poll", "v9")]


async def test_resume_processing_survives_undecodable_response():
    def handler(request):
        raise httpx.DecodingError("corrupt gzip body", request=request)

    api = MediaApiClient(
        "https://recipes.example.com/api", "tok",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    machine = _machine(api)
    machine.adopt_existing(make_asset(MediaStatus.PROCESSING, MediaType.VIDEO, id="v9"))

    assert await machine.resume_processing() is None

    assert machine.status is UploadStatus.ERROR
    assert machine.error.startswith("Failed to poll status")


async def test_resume_processing_contains_unexpected_errors():
    class BrokenApi(FakeApi):
        async def poll_video_status(self, asset_id):
            self.poll_count += 1
            raise RuntimeError("decoder exploded")

    machine = _machine(BrokenApi())
    machine.adopt_existing(make_asset(MediaStatus.PROCESSING, MediaType.VIDEO, id="v9"))

    assert await machine.resume_processing() is None

    assert machine.status is UploadStatus.ERROR
    assert machine.error == "decoder exploded"


async def test_concurrent_resume_processing_shares_one_poll():
    api = FakeApi(poll_statuses=[MediaStatus.PROCESSING, MediaStatus.READY])
    machine = _machine(api)
    machine.adopt_existing(make_asset(MediaStatus.PROCESSING, MediaType.VIDEO, id="v9"))

    first, second = await asyncio.gather(machine.resume_processing(), machine.resume_processing())

    assert api.poll_count == 2
    assert first is not None and first == second
    assert machine.status is UploadStatus.READY


async def test_concurrent_resume_processing_fails_once():
    class FailingApi(FakeApi):
        async def poll_video_status(self, asset_id):
            self.poll_count += 1
            raise ProcessingError("Failed to poll status", status_code=502)

    api = FailingApi()
    machine = _machine(api)
    snapshots = _record(machine)
    machine.adopt_existing(make_asset(MediaStatus.PROCESSING, MediaType.VIDEO, id="v9"))

    results = await asyncio.gather(machine.resume_processing(), machine.resume_processing())

    assert results == [None, None]
    assert api.poll_count == 1
    assert machine.error == "Failed to poll status"
    assert _statuses(snapshots) == [UploadStatus.PROCESSING, UploadStatus.ERROR]


async def test_poll_request_failure_is_terminal():
    class FailingApi(FakeApi):
        async def poll_video_status(self, asset_id):
            self.poll_count += 1
            raise ProcessingError("Failed to poll status", status_code=502)

    api = FailingApi()
    machine = _machine(api)
    await machine.upload(MP4, "recipe", name="clip.mp4")

    assert machine.status is UploadStatus.ERROR
    assert machine.error == "Failed to poll status"
    assert api.poll_count == 1


async def test_sessions_are_independent():
    first = _machine(FakeApi())
    second = _machine(FakeApi(poll_statuses=[MediaStatus.ERROR]))

    results = await asyncio.gather(
        first.upload(JPEG, "recipe", name="a.jpg"),
        second.upload(MP4, "recipe", name="b.mp4"),
    )

    assert results[0] is not None and results[1] is None
    assert first.status is UploadStatus.READY
    assert second.status is UploadStatus.ERROR


async def test_broken_listener_does_not_break_upload():
    machine = _machine(FakeApi())

    def explode(snapshot):
        raise RuntimeError("listener bug")

    machine.subscribe(explode)
    await machine.upload(JPEG, "recipe", name="a.jpg")

    assert machine.status is UploadStatus.READY


def test_terminal_states_only_return_to_idle():
    assert VALID_TRANSITIONS[UploadStatus.READY] == {UploadStatus.IDLE}
    assert VALID_TRANSITIONS[UploadStatus.ERROR] == {UploadStatus.IDLE}
    for status, targets in VALID_TRANSITIONS.items():
        if status is not UploadStatus.IDLE:
            assert UploadStatus.IDLE in targets
