import asyncio
import itertools
import threading
import time

import pytest

from media_enrich.core.errors import FilesystemError, ProbeError
from media_enrich.core.models import AssetType, ExifInfo
from media_enrich.ingest import MetadataExtractionProcessor
from media_enrich.ingest.tags import normalize_tags
from media_enrich.jobs import AssetJob, BaseJob, Job, JobName, JobQueue, QueueName

VIDEO_PROBE = {
    "format": {
        "duration": "3.2",
        "size": "4096",
        "tags": {"creation_time": "2022-06-01T12:00:00.000000Z"},
    },
    "streams": [{"codec_type": "video", "width": 1080, "height": 1920, "r_frame_rate": "60/1"}],
}


class RecordingJobs:
    def __init__(self):
        self.queued: list[Job] = []
        self.paused: list[QueueName] = []
        self.resumed: list[QueueName] = []

    async def queue(self, job: Job) -> None:
        self.queued.append(job)

    async def pause(self, name: QueueName) -> None:
        self.paused.append(name)

    async def resume(self, name: QueueName) -> None:
        self.resumed.append(name)


@pytest.fixture
def jobs() -> RecordingJobs:
    return RecordingJobs()


@pytest.fixture
def processor(asset_repo, exif_repo, jobs, geocoding, tag_reader):
    return MetadataExtractionProcessor(
        asset_repo,
        exif_repo,
        jobs,
        geocoding,
        tag_reader=tag_reader,
        prober=lambda path: VIDEO_PROBE,
        time_zone_lookup=None,
    )


def _extract(processor: MetadataExtractionProcessor, asset) -> None:
    handler = (
        processor.extract_video_metadata
        if asset.type == AssetType.VIDEO
        else processor.extract_exif_info
    )
    name = (
        JobName.EXTRACT_VIDEO_METADATA if asset.type == AssetType.VIDEO else JobName.EXIF_EXTRACTION
    )
    asyncio.run(handler(Job(name=name, data=AssetJob(asset=asset))))


def test_image_extraction_persists_record_and_chains_migration(
    processor, make_asset, asset_repo, exif_repo, jobs, tag_reader
) -> None:
    asset = make_asset("img")
    tag_reader.tags[asset.original_path] = normalize_tags(
        {
            "EXIF:Make": "Canon",
            "EXIF:DateTimeOriginal": "2021:07:14 10:30:00",
            "EXIF:OffsetTimeOriginal": "+02:00",
            "EXIF:GPSLatitude": 48.8566,
            "EXIF:GPSLongitude": 2.3522,
        }
    )

    _extract(processor, asset)

    exif = exif_repo.get("img")
    assert exif.make == "Canon"
    assert exif.time_zone == "UTC+2"
    assert (exif.city, exif.state, exif.country) == ("Paris", "Ile-de-France", "FR")
    assert exif.file_size_in_byte == len(b"media")
    stored = asset_repo.get("img")
    assert stored.file_created_at == exif.date_time_original
    assert [job.name for job in jobs.queued] == [JobName.STORAGE_TEMPLATE_MIGRATION_SINGLE]
    assert jobs.queued[0].data.asset.file_created_at == exif.date_time_original


def test_sidecar_tags_take_precedence(processor, make_asset, exif_repo, tag_reader, tmp_path) -> None:
    sidecar = tmp_path / "img.jpg.xmp"
    sidecar.write_text("<x:xmpmeta/>")
    asset = make_asset("img", sidecar_path=str(sidecar))
    tag_reader.tags[asset.original_path] = {"Make": "Canon", "Model": "EOS R5"}
    tag_reader.tags[str(sidecar)] = {"Make": "Nikon"}

    _extract(processor, asset)

    exif = exif_repo.get("img")
    assert exif.make == "Nikon"
    assert exif.model == "EOS R5"


def test_tag_read_failure_is_not_fatal(processor, make_asset, exif_repo, tag_reader) -> None:
    asset = make_asset("img")
    tag_reader.failing.add(asset.original_path)

    _extract(processor, asset)

    exif = exif_repo.get("img")
    assert exif is not None
    assert exif.make is None
    assert exif.date_time_original == asset.file_created_at


def test_missing_original_is_fatal_for_the_asset(
    processor, make_asset, exif_repo, jobs, tmp_path
) -> None:
    asset = make_asset("img")
    (tmp_path / "img.jpg").unlink()

    with pytest.raises(FilesystemError):
        _extract(processor, asset)
    assert exif_repo.get("img") is None
    assert jobs.queued == []


def test_disabled_geocoding_makes_no_lookups(
    asset_repo, exif_repo, jobs, geocoding, tag_reader, make_asset
) -> None:
    processor = MetadataExtractionProcessor(
        asset_repo,
        exif_repo,
        jobs,
        geocoding,
        reverse_geocoding_enabled=False,
        tag_reader=tag_reader,
    )
    asset = make_asset("img")
    tag_reader.tags[asset.original_path] = {"GPSLatitude": 1.0, "GPSLongitude": 2.0}

    _extract(processor, asset)
    asyncio.run(processor.init())

    assert geocoding.calls == []
    assert geocoding.init_calls == 0
    assert jobs.paused == []
    assert exif_repo.get("img").city is None


def test_geocoding_not_ready_leaves_location_null(
    processor, make_asset, exif_repo, geocoding, tag_reader
) -> None:
    geocoding.ready = False
    asset = make_asset("img")
    tag_reader.tags[asset.original_path] = {"GPSLatitude": 1.0, "GPSLongitude": 2.0}

    _extract(processor, asset)

    exif = exif_repo.get("img")
    assert geocoding.calls == [(1.0, 2.0)]
    assert exif.latitude == 1.0
    assert exif.city is None and exif.country is None


@pytest.mark.parametrize("video_first", [False, True])
def test_live_photo_pairing_is_order_independent(
    processor, make_asset, asset_repo, tag_reader, video_first
) -> None:
    still = make_asset("still")
    motion = make_asset("motion", type=AssetType.VIDEO)
    tag_reader.tags[still.original_path] = {"ContentIdentifier": "cid-42"}
    tag_reader.tags[motion.original_path] = {"ContentIdentifier": "cid-42"}

    for asset in ([motion, still] if video_first else [still, motion]):
        _extract(processor, asset)

    assert asset_repo.get("still").live_photo_video_id == "motion"
    assert asset_repo.get("still").is_visible
    assert not asset_repo.get("motion").is_visible
    assert asset_repo.get("motion").live_photo_video_id is None


@pytest.mark.parametrize("order", list(itertools.permutations(["i1", "v1", "v2"])))
def test_live_photo_with_duplicate_clips_links_lowest_id(
    processor, make_asset, asset_repo, tag_reader, order
) -> None:
    assets = {
        "i1": make_asset("i1"),
        "v1": make_asset("v1", type=AssetType.VIDEO),
        "v2": make_asset("v2", type=AssetType.VIDEO),
    }
    for asset in assets.values():
        tag_reader.tags[asset.original_path] = {"ContentIdentifier": "X"}

    for asset_id in order:
        _extract(processor, asset_repo.get(asset_id))

    assert asset_repo.get("i1").live_photo_video_id == "v1"
    assert not asset_repo.get("v1").is_visible
    assert asset_repo.get("v2").is_visible


def test_live_photo_needs_same_owner(processor, make_asset, asset_repo, tag_reader) -> None:
    still = make_asset("still")
    motion = make_asset("motion", type=AssetType.VIDEO, owner_id="owner-2")
    tag_reader.tags[still.original_path] = {"ContentIdentifier": "cid-42"}
    tag_reader.tags[motion.original_path] = {"ContentIdentifier": "cid-42"}

    _extract(processor, motion)
    _extract(processor, still)

    assert asset_repo.get("still").live_photo_video_id is None
    assert asset_repo.get("motion").is_visible


def test_video_extraction(processor, make_asset, asset_repo, exif_repo, jobs) -> None:
    asset = make_asset("clip", type=AssetType.VIDEO)

    _extract(processor, asset)

    exif = exif_repo.get("clip")
    stored = asset_repo.get("clip")
    assert (exif.exif_image_width, exif.exif_image_height, exif.fps) == (1080, 1920, 60)
    assert exif.file_size_in_byte == 4096
    assert stored.duration == "00:00:03.200"
    assert stored.file_created_at.year == 2022
    assert jobs.queued[-1].name == JobName.STORAGE_TEMPLATE_MIGRATION_SINGLE


def test_probe_failure_is_recovered(
    asset_repo, exif_repo, jobs, geocoding, tag_reader, make_asset
) -> None:
    def failing_probe(path: str) -> dict:
        raise ProbeError("ffprobe failed")

    processor = MetadataExtractionProcessor(
        asset_repo, exif_repo, jobs, geocoding, tag_reader=tag_reader, prober=failing_probe
    )
    asset = make_asset("clip", type=AssetType.VIDEO)

    _extract(processor, asset)

    exif = exif_repo.get("clip")
    assert exif is not None
    assert exif.exif_image_width is None and exif.fps is None
    assert exif.file_size_in_byte == len(b"media")
    assert asset_repo.get("clip").duration is None


def test_hidden_video_is_skipped(processor, make_asset, exif_repo, jobs) -> None:
    asset = make_asset("clip", type=AssetType.VIDEO, is_visible=False)

    _extract(processor, asset)

    assert exif_repo.get("clip") is None
    assert jobs.queued == []


def test_extraction_is_idempotent(processor, make_asset, asset_repo, exif_repo, tag_reader) -> None:
    asset = make_asset("img")
    tag_reader.tags[asset.original_path] = {"Make": "Canon", "ISO": [800, 1600]}

    _extract(processor, asset)
    first = exif_repo.get("img")
    _extract(processor, asset_repo.get("img"))

    assert exif_repo.get("img") == first
    assert first.iso == 800


def test_queue_scan_emits_only_missing_assets(processor, make_asset, exif_repo, jobs) -> None:
    make_asset("done")
    make_asset("photo")
    make_asset("clip", type=AssetType.VIDEO)
    exif_repo.upsert(ExifInfo(asset_id="done"))

    asyncio.run(
        processor.handle_queue_metadata_extraction(
            Job(name=JobName.QUEUE_METADATA_EXTRACTION, data=BaseJob(force=False))
        )
    )

    emitted = {job.data.asset.id: job.name for job in jobs.queued}
    assert emitted == {
        "photo": JobName.EXIF_EXTRACTION,
        "clip": JobName.EXTRACT_VIDEO_METADATA,
    }


def test_forced_queue_scan_emits_every_asset(processor, make_asset, exif_repo, jobs) -> None:
    for asset_id in ("a", "b", "c"):
        make_asset(asset_id)
    exif_repo.upsert(ExifInfo(asset_id="a"))
    processor.page_size = 2

    asyncio.run(
        processor.handle_queue_metadata_extraction(
            Job(name=JobName.QUEUE_METADATA_EXTRACTION, data=BaseJob(force=True))
        )
    )

    assert [job.data.asset.id for job in jobs.queued] == ["a", "b", "c"]


def test_init_pauses_extraction_around_rebuild(processor, geocoding, jobs) -> None:
    asyncio.run(processor.init(delete_cache=True))

    assert geocoding.deleted == 1
    assert geocoding.init_calls == 1
    assert jobs.paused == [QueueName.METADATA_EXTRACTION]
    assert jobs.resumed == [QueueName.METADATA_EXTRACTION]


def test_init_failure_is_logged_and_queue_resumed(processor, geocoding, jobs, caplog) -> None:
    def broken_init() -> None:
        raise OSError("disk full")

    geocoding.init = broken_init

    asyncio.run(processor.init())

    assert jobs.resumed == [QueueName.METADATA_EXTRACTION]
    assert "Unable to initialize reverse geocoding" in caplog.text


class SlowGeocoding:
    """Index whose rebuild takes a while; records whether any lookup saw it mid-build."""

    def __init__(self, inner):
        self.inner = inner
        self.inner.ready = False
        self.observed_building: list[bool] = []

    def init(self) -> None:
        self.inner.building = True
        time.sleep(0.05)
        self.inner.ready = True
        self.inner.building = False

    def delete_cache(self) -> None:
        self.inner.delete_cache()

    def reverse_geocode(self, latitude: float, longitude: float):
        self.observed_building.append(self.inner.building)
        return self.inner.reverse_geocode(latitude, longitude)


def test_no_lookup_observes_a_rebuilding_index(
    asset_repo, exif_repo, geocoding, tag_reader, make_asset
) -> None:
    slow = SlowGeocoding(geocoding)
    assets = []
    for index in range(12):
        asset = make_asset(f"img-{index:02d}")
        tag_reader.tags[asset.original_path] = {"GPSLatitude": 1.0, "GPSLongitude": 2.0}
        assets.append(asset)

    async def scenario() -> None:
        queue = JobQueue()
        processor = MetadataExtractionProcessor(
            asset_repo, exif_repo, queue, slow, tag_reader=tag_reader
        )
        processor.register(queue, concurrency=4)
        await queue.start()
        for asset in assets[:6]:
            await queue.queue(Job(name=JobName.EXIF_EXTRACTION, data=AssetJob(asset=asset)))
        rebuild = asyncio.create_task(processor.init())
        await asyncio.sleep(0)
        for asset in assets[6:]:
            await queue.queue(Job(name=JobName.EXIF_EXTRACTION, data=AssetJob(asset=asset)))
        await rebuild
        await queue.wait_until_idle()
        await queue.stop()

    asyncio.run(scenario())

    assert len(slow.observed_building) == 12
    assert not any(slow.observed_building)
    for asset in assets[6:]:
        assert exif_repo.get(asset.id).city == "Paris"


def test_zeroed_capture_date_uses_file_time_and_chains(
    processor, make_asset, asset_repo, exif_repo, jobs, tag_reader
) -> None:
    asset = make_asset("img")
    tag_reader.tags[asset.original_path] = {"DateTimeOriginal": "0000:00:00 00:00:00"}

    _extract(processor, asset)

    assert exif_repo.get("img").date_time_original == asset.file_created_at
    assert asset_repo.get("img").file_created_at == asset.file_created_at
    assert [job.name for job in jobs.queued] == [JobName.STORAGE_TEMPLATE_MIGRATION_SINGLE]


def test_repository_writes_run_off_the_event_loop(
    processor, make_asset, asset_repo, monkeypatch
) -> None:
    asset = make_asset("img")
    save = asset_repo.save
    threads: list[bool] = []

    def recording_save(asset_id, **fields):
        threads.append(threading.current_thread() is threading.main_thread())
        return save(asset_id, **fields)

    monkeypatch.setattr(asset_repo, "save", recording_save)

    _extract(processor, asset)

    assert threads == [False]


def test_rebuild_keeps_an_operator_pause(
    asset_repo, exif_repo, geocoding, tag_reader, make_asset
) -> None:
    asset = make_asset("img")

    async def scenario() -> tuple[bool, bool]:
        queue = JobQueue()
        processor = MetadataExtractionProcessor(
            asset_repo, exif_repo, queue, geocoding, tag_reader=tag_reader
        )
        processor.register(queue)
        await queue.start()
        await queue.pause(QueueName.METADATA_EXTRACTION)
        await processor.init(delete_cache=True)
        await queue.queue(Job(name=JobName.EXIF_EXTRACTION, data=AssetJob(asset=asset)))
        await asyncio.sleep(0.01)
        after_rebuild = queue.get_counts(QueueName.METADATA_EXTRACTION).paused
        extracted_while_paused = exif_repo.get("img") is not None
        await queue.resume(QueueName.METADATA_EXTRACTION)
        await queue.wait_until_idle()
        await queue.stop()
        return after_rebuild, extracted_while_paused

    after_rebuild, extracted_while_paused = asyncio.run(scenario())

    assert after_rebuild
    assert not extracted_while_paused
    assert geocoding.init_calls == 1
    assert exif_repo.get("img") is not None
