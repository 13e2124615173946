import asyncio
import logging
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dashboard_api.core.clock import isoformat, utcnow
from dashboard_api.core.config import settings
from dashboard_api.core.errors import NotFound, StoreUnavailable, UploadFailed, ValidationFailed
from dashboard_api.core.events import ChangeDispatcher, ChangeEvent, ResourceType
from dashboard_api.domains.storage.entities import (
    SIZE_RANGES,
    FileObject,
    FilePage,
    ProgressTracker,
    UploadResult,
    base_name,
    object_key,
    size_range,
)

logger = logging.getLogger(__name__)

MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageClientFactory:
    def create_s3_client(self):
        return boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
        )


def _is_missing(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code")) in MISSING_CODES


def _metadata_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _stream_size(fileobj: BinaryIO) -> int:
    position = fileobj.tell()
    fileobj.seek(0, 2)
    size = fileobj.tell()
    fileobj.seek(position)
    return size - position


class StorageService:
    """Files of every collection, kept in one bucket under `{collection}/` prefixes"""

    def __init__(
        self,
        client_factory: StorageClientFactory,
        bucket: str,
        dispatcher: Optional[ChangeDispatcher] = None,
        url_expiry: int = 3600,
    ):
        self._factory = client_factory
        self._client = None
        self.bucket = bucket
        self.dispatcher = dispatcher
        self.url_expiry = url_expiry

    @property
    def client(self):
        if self._client is None:
            self._client = self._factory.create_s3_client()
        return self._client

    async def _call(self, func: Callable, *args, **kwargs):
        """Run a blocking boto3 call in a worker thread; transport failures become StoreUnavailable"""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ClientError as exc:
            if _is_missing(exc):
                raise NotFound(f"File not found in {self.bucket}") from exc
            logger.error(f"Object store call failed: {exc}")
            raise StoreUnavailable(f"Object store call failed: {exc}") from exc
        except BotoCoreError as exc:
            logger.error(f"Object store unreachable: {exc}")
            raise StoreUnavailable(f"Object store unreachable: {exc}") from exc

    def _publish(self, path: str, before: Optional[dict], after: Optional[dict], actor_id: Optional[str]) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.publish(
            ChangeEvent(
                collection=path.split("/", 1)[0],
                resource_id=path,
                resource_type=ResourceType.FILE,
                before=before,
                after=after,
                actor_id=actor_id,
            )
        )

    def _ensure_bucket(self) -> None:
        buckets = self.client.list_buckets().get("Buckets", [])
        if not any(b["Name"] == self.bucket for b in buckets):
            self.client.create_bucket(Bucket=self.bucket)
            logger.info(f"Created bucket {self.bucket}")

    async def ensure_bucket(self) -> None:
        await self._call(self._ensure_bucket)

    async def upload(
        self,
        collection: str,
        fileobj: BinaryIO,
        filename: str,
        content_type: Optional[str] = None,
        sub_path: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        on_progress: Optional[Callable[[float], None]] = None,
        actor_id: Optional[str] = None,
    ) -> UploadResult:
        """Stream a file into `{collection}/{sub_path}/{filename}`.

        `on_progress` is called from boto3 transfer threads.
        """
        name = base_name(filename)
        if not name:
            raise ValidationFailed("A file name is required", {"file": "A file name is required"})

        path = object_key(collection, sub_path, name)
        content_type = content_type or "application/octet-stream"
        size = _stream_size(fileobj)
        custom_metadata = {
            "is_public": "false",
            **{str(key): _metadata_value(value) for key, value in (metadata or {}).items()},
            "uploaded_at": isoformat(utcnow()),
            "original_name": name,
            "size": str(size),
        }
        tracker = ProgressTracker(size, on_progress)

        try:
            await asyncio.to_thread(
                self.client.upload_fileobj,
                fileobj,
                self.bucket,
                path,
                ExtraArgs={"ContentType": content_type, "Metadata": custom_metadata},
                Callback=tracker,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"Upload of {path} failed: {exc}")
            raise UploadFailed(f"Upload of {path} failed: {exc}") from exc
        tracker.complete()

        url = await self.download_url(path)
        logger.info(f"Uploaded {path} ({size} bytes)")
        self._publish(
            path,
            None,
            {"path": path, "contentType": content_type, "size": size, "metadata": custom_metadata},
            actor_id,
        )
        return UploadResult(url=url, path=path, name=name, size=size, type=content_type, metadata=custom_metadata)

    async def _head(self, path: str) -> Dict[str, Any]:
        return await self._call(self.client.head_object, Bucket=self.bucket, Key=path)

    def _to_file(self, path: str, head: Dict[str, Any]) -> FileObject:
        return FileObject(
            path=path,
            name=base_name(path),
            size=int(head.get("ContentLength", 0)),
            content_type=head.get("ContentType"),
            custom_metadata=dict(head.get("Metadata") or {}),
            time_created=head.get("LastModified"),
        )

    async def get_metadata(self, path: str) -> FileObject:
        return self._to_file(path, await self._head(path))

    async def download_url(self, path: str) -> str:
        return await self._call(
            self.client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=self.url_expiry,
        )

    def _list_objects(self, prefix: str) -> List[Dict[str, Any]]:
        paginator = self.client.get_paginator("list_objects_v2")
        kwargs = {"Bucket": self.bucket}
        if prefix:
            kwargs["Prefix"] = prefix
        objects = []
        for page in paginator.paginate(**kwargs):
            objects.extend(page.get("Contents", []))
        return sorted(objects, key=lambda item: item["Key"])

    async def _listing(self, collection: str, sub_path: str = "") -> List[Dict[str, Any]]:
        prefix = object_key(collection, sub_path)
        return await self._call(self._list_objects, f"{prefix}/" if prefix else "")

    async def list_files(
        self,
        collection: str,
        sub_path: str = "",
        page_size: int = 20,
        page_token: Optional[str] = None,
    ) -> FilePage:
        """One page of files under the prefix.

        The whole listing is fetched and sliced here; the token is the start
        offset of the next page.
        """
        try:
            start = int(page_token) if page_token else 0
        except ValueError:
            start = -1
        if start < 0:
            raise ValidationFailed("Invalid page token", {"page_token": "Invalid page token"})
        if page_size < 1:
            raise ValidationFailed("page_size must be positive", {"page_size": "page_size must be positive"})

        objects = await self._listing(collection, sub_path)
        page = objects[start:start + page_size]
        files = []
        for item in page:
            file = await self.get_metadata(item["Key"])
            file.url = await self.download_url(item["Key"])
            files.append(file)

        end = start + page_size
        return FilePage(files=files, next_page_token=str(end) if end < len(objects) else None)

    async def _all_files(self, collection: str, sub_path: str = "") -> List[FileObject]:
        objects = await self._listing(collection, sub_path)
        return [await self.get_metadata(item["Key"]) for item in objects]

    async def update_metadata(self, path: str, metadata: Dict[str, Any]) -> FileObject:
        """Merge custom metadata; S3 objects are copied onto themselves to replace it"""
        head = await self._head(path)
        merged = {**(head.get("Metadata") or {}), **{str(k): _metadata_value(v) for k, v in metadata.items()}}
        merged["updated_at"] = isoformat(utcnow())

        copy_args = {
            "Bucket": self.bucket,
            "Key": path,
            "CopySource": {"Bucket": self.bucket, "Key": path},
            "Metadata": merged,
            "MetadataDirective": "REPLACE",
        }
        if head.get("ContentType"):
            copy_args["ContentType"] = head["ContentType"]
        await self._call(self.client.copy_object, **copy_args)
        return self._to_file(path, {**head, "Metadata": merged})

    async def set_access(self, path: str, is_public: bool) -> FileObject:
        """Flag only; bucket policies decide who can actually read the object"""
        return await self.update_metadata(path, {"is_public": "true" if is_public else "false"})

    async def link_to_record(self, path: str, record_id: str, record_type: str) -> FileObject:
        return await self.update_metadata(
            path,
            {"record_id": record_id, "record_type": record_type, "linked_at": isoformat(utcnow())},
        )

    async def delete(self, path: str, actor_id: Optional[str] = None) -> None:
        """Remove an object; raises NotFound when it does not exist"""
        file = await self.get_metadata(path)
        await self._call(self.client.delete_object, Bucket=self.bucket, Key=path)
        logger.info(f"Deleted {path}")
        self._publish(
            path,
            {"path": path, "contentType": file.content_type, "size": file.size, "metadata": file.custom_metadata},
            None,
            actor_id,
        )

    async def batch_delete(self, paths: Iterable[str], actor_id: Optional[str] = None) -> List[str]:
        """Delete several objects; missing ones are skipped. Returns the paths actually deleted."""
        deleted = []
        for path in paths:
            try:
                await self.delete(path, actor_id=actor_id)
            except NotFound:
                continue
            deleted.append(path)
        return deleted

    async def search_files(
        self, collection: str, criteria: Dict[str, Any], sub_path: str = ""
    ) -> List[FileObject]:
        """Files whose custom metadata matches every criterion exactly"""
        wanted = {str(k): _metadata_value(v) for k, v in criteria.items()}
        return [
            file
            for file in await self._all_files(collection, sub_path)
            if all(file.custom_metadata.get(key) == value for key, value in wanted.items())
        ]

    async def files_for_record(self, collection: str, record_id: str) -> List[FileObject]:
        return await self.search_files(collection, {"record_id": record_id})

    async def stats(self, collection: str, sub_path: str = "") -> Dict[str, Any]:
        stats = {
            "totalFiles": 0,
            "totalSize": 0,
            "fileTypes": {},
            "sizeRanges": {label: 0 for label, _ in SIZE_RANGES},
        }
        for file in await self._all_files(collection, sub_path):
            stats["totalFiles"] += 1
            stats["totalSize"] += file.size
            content_type = file.content_type or "unknown"
            stats["fileTypes"][content_type] = stats["fileTypes"].get(content_type, 0) + 1
            stats["sizeRanges"][size_range(file.size)] += 1
        return stats

    async def usage(self) -> Dict[str, int]:
        """Object count and total bytes across the whole bucket"""
        objects = await self._call(self._list_objects, "")
        return {"files": len(objects), "bytes": sum(int(item.get("Size", 0)) for item in objects)}


def storage_service_factory(dispatcher: Optional[ChangeDispatcher] = None) -> StorageService:
    return StorageService(
        StorageClientFactory(),
        settings.s3_bucket,
        dispatcher=dispatcher,
        url_expiry=settings.file_url_expiry_seconds,
    )
