"""
Blob store client over an in-memory S3 client
"""

import pytest

from dashboard_api.core.errors import NotFound, UploadFailed, ValidationFailed
from dashboard_api.core.events import ResourceType
from dashboard_api.domains.storage.entities import MB, ProgressTracker, object_key, size_range


class TestKeys:
    def test_object_key_collapses_empty_segments(self):
        assert object_key("products", "", "a.png") == "products/a.png"
        assert object_key("products", "/2024//03/", "a.png") == "products/2024/03/a.png"
        assert object_key("products") == "products"

    def test_size_ranges(self):
        assert size_range(0) == "0-1MB"
        assert size_range(MB) == "0-1MB"
        assert size_range(3 * MB) == "1-5MB"
        assert size_range(7 * MB) == "5-10MB"
        assert size_range(11 * MB) == "10MB+"


class TestProgress:
    def test_monotonic_and_ends_at_100(self):
        reports = []
        tracker = ProgressTracker(1000, reports.append)
        for amount in (100, 300, 0, 600):
            tracker(amount)
        tracker.complete()

        assert reports == sorted(reports)
        assert reports[-1] == 100.0

    def test_empty_file_reports_100(self):
        reports = []
        tracker = ProgressTracker(0, reports.append)
        tracker.complete()
        assert reports == [100.0]


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_returns_descriptor(self, storage, s3_client, make_file):
        reports = []
        result = await storage.upload(
            "products", make_file(600 * 1024), "C:\\photos\\lamp.png", "image/png",
            sub_path="2024", metadata={"record_id": "p1"}, on_progress=reports.append,
        )

        assert result.path == "products/2024/lamp.png"
        assert result.name == "lamp.png"
        assert result.size == 600 * 1024
        assert result.type == "image/png"
        assert result.url.startswith("https://files.test/test-bucket/products/2024/lamp.png")
        assert result.metadata["record_id"] == "p1"
        assert result.metadata["is_public"] == "false"
        assert result.metadata["original_name"] == "lamp.png"
        assert reports == sorted(reports) and reports[-1] == 100.0
        assert s3_client.objects["products/2024/lamp.png"]["ContentType"] == "image/png"

    @pytest.mark.asyncio
    async def test_transport_failure_raises_upload_failed(self, storage, s3_client, make_file):
        s3_client.fail_uploads = True
        with pytest.raises(UploadFailed):
            await storage.upload("products", make_file(10), "a.txt")

    @pytest.mark.asyncio
    async def test_upload_publishes_file_event(self, storage, dispatcher, make_file):
        received = []

        async def listener(event):
            received.append(event)

        dispatcher.add_listener(listener)
        await storage.upload("products", make_file(10), "a.txt", actor_id="admin-1")
        await dispatcher.drain()

        assert len(received) == 1
        assert received[0].resource_type == ResourceType.FILE
        assert received[0].resource_id == "products/a.txt"
        assert received[0].before is None
        assert received[0].after["size"] == 10


class TestListing:
    @pytest.fixture
    def seeded(self, s3_client):
        for n in range(5):
            s3_client.put(f"docs/reports/r{n}.pdf", 10 + n, "application/pdf")
        s3_client.put("docs/other.txt", 1, "text/plain")
        s3_client.put("documents/x.txt", 1, "text/plain")
        return s3_client

    @pytest.mark.asyncio
    async def test_pages_sliced_with_offset_token(self, storage, seeded):
        first = await storage.list_files("docs", "reports", page_size=2)
        second = await storage.list_files("docs", "reports", page_size=2, page_token=first.next_page_token)
        third = await storage.list_files("docs", "reports", page_size=2, page_token=second.next_page_token)

        names = [f.name for page in (first, second, third) for f in page.files]
        assert names == ["r0.pdf", "r1.pdf", "r2.pdf", "r3.pdf", "r4.pdf"]
        assert first.next_page_token == "2"
        assert third.next_page_token is None

    @pytest.mark.asyncio
    async def test_prefix_is_a_path_segment(self, storage, seeded):
        page = await storage.list_files("docs", page_size=50)
        assert sorted(f.path for f in page.files) == [
            "docs/other.txt", *[f"docs/reports/r{n}.pdf" for n in range(5)]
        ]

    @pytest.mark.asyncio
    async def test_only_page_items_are_inspected(self, storage, seeded):
        seeded.head_calls.clear()
        await storage.list_files("docs", "reports", page_size=2)
        assert seeded.head_calls == ["docs/reports/r0.pdf", "docs/reports/r1.pdf"]

    @pytest.mark.asyncio
    async def test_bad_token(self, storage, seeded):
        with pytest.raises(ValidationFailed):
            await storage.list_files("docs", page_token="abc")
        with pytest.raises(ValidationFailed):
            await storage.list_files("docs", page_token="-1")

    @pytest.mark.asyncio
    async def test_page_size_must_be_positive(self, storage, seeded):
        for page_size in (0, -3):
            with pytest.raises(ValidationFailed) as exc:
                await storage.list_files("docs", page_size=page_size)
            assert set(exc.value.errors) == {"page_size"}


class TestMetadata:
    @pytest.mark.asyncio
    async def test_get_metadata_missing(self, storage):
        with pytest.raises(NotFound):
            await storage.get_metadata("nope/file.txt")

    @pytest.mark.asyncio
    async def test_set_access_and_link_merge_metadata(self, storage, make_file):
        result = await storage.upload("products", make_file(10), "a.txt", metadata={"owner": "ops"})

        file = await storage.set_access(result.path, True)
        assert file.is_public is True

        file = await storage.link_to_record(result.path, "p1", "products")
        assert file.record_id == "p1"

        stored = await storage.get_metadata(result.path)
        assert stored.custom_metadata["is_public"] == "true"
        assert stored.custom_metadata["record_type"] == "products"
        assert stored.custom_metadata["owner"] == "ops"
        assert "linked_at" in stored.custom_metadata
        assert stored.content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_search_and_files_for_record(self, storage, s3_client):
        s3_client.put("products/a.png", 1, "image/png", {"record_id": "p1", "is_public": "true"})
        s3_client.put("products/b.png", 1, "image/png", {"record_id": "p2", "is_public": "true"})
        s3_client.put("products/c.png", 1, "image/png", {"record_id": "p1", "is_public": "false"})

        assert [f.path for f in await storage.files_for_record("products", "p1")] == ["products/a.png", "products/c.png"]
        public_p1 = await storage.search_files("products", {"record_id": "p1", "is_public": True})
        assert [f.path for f in public_p1] == ["products/a.png"]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_missing_raises_not_found(self, storage):
        with pytest.raises(NotFound):
            await storage.delete("products/none.txt")

    @pytest.mark.asyncio
    async def test_delete_publishes_event(self, storage, s3_client, dispatcher):
        s3_client.put("products/a.txt", 5, "text/plain")
        received = []

        async def listener(event):
            received.append(event)

        dispatcher.add_listener(listener)
        await storage.delete("products/a.txt", actor_id="admin-1")
        await dispatcher.drain()

        assert "products/a.txt" not in s3_client.objects
        assert received[0].after is None
        assert received[0].before["contentType"] == "text/plain"

    @pytest.mark.asyncio
    async def test_batch_delete_skips_missing(self, storage, s3_client):
        s3_client.put("products/a.txt", 5)
        s3_client.put("products/b.txt", 5)

        deleted = await storage.batch_delete(["products/a.txt", "products/missing.txt", "products/b.txt"])

        assert deleted == ["products/a.txt", "products/b.txt"]
        assert s3_client.objects == {}


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_and_usage(self, storage, s3_client):
        s3_client.put("media/a.png", 3 * MB, "image/png")
        s3_client.put("media/b.mp4", 7 * MB, "video/mp4")
        s3_client.put("media/c.png", 100, "image/png")
        s3_client.put("other/d.bin", 11 * MB)

        stats = await storage.stats("media")

        assert stats["totalFiles"] == 3
        assert stats["totalSize"] == 10 * MB + 100
        assert stats["fileTypes"] == {"image/png": 2, "video/mp4": 1}
        assert stats["sizeRanges"] == {"0-1MB": 1, "1-5MB": 1, "5-10MB": 1, "10MB+": 0}

        assert await storage.usage() == {"files": 4, "bytes": 21 * MB + 100}

    @pytest.mark.asyncio
    async def test_ensure_bucket_creates_once(self, storage, s3_client):
        await storage.ensure_bucket()
        await storage.ensure_bucket()
        assert s3_client.buckets == {"test-bucket"}
