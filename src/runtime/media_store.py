# =============================================================================
# Object Store - Media Files
# =============================================================================
# put/get/head/list by string key, plus public URL construction.
#
# Backends:
#   S3ObjectStore     - boto3 S3 client
#   MemoryObjectStore - process-local dict, for local runs and tests
# =============================================================================

import logging
import mimetypes
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from src.runtime.errors import ObjectNotFound

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class ObjectInfo:
    key: str
    content_type: str
    size: int
    last_modified: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def media_type(self) -> str:
        return media_type_for(self.content_type)


def guess_content_type(file_name: str) -> str:
    """Content type from a file name, octet-stream when unknown."""
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or "application/octet-stream"


def media_type_for(content_type: str) -> str:
    return "video" if (content_type or "").startswith("video/") else "image"


class ObjectStore:
    """Base object store. Backends implement put/get/head/list."""

    def __init__(self, bucket: str, region: str):
        self.bucket = bucket
        self.region = region

    def public_url(self, key: str) -> str:
        """Direct S3 URL: https://{bucket}.s3.{region}.amazonaws.com/{key}"""
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def put(self, key: str, data: bytes, content_type: str = None,
            metadata: Dict[str, str] = None) -> ObjectInfo:
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        raise NotImplementedError

    def head(self, key: str) -> ObjectInfo:
        raise NotImplementedError

    def list(self, prefix: str = "", limit: int = 20,
             continuation_token: str = None) -> Dict[str, Any]:
        """
        List objects under a prefix.

        Returns:
            {"objects": [ObjectInfo], "isTruncated": bool, "nextContinuationToken": str|None}
        """
        raise NotImplementedError


# =============================================================================
# S3 BACKEND
# =============================================================================
class S3ObjectStore(ObjectStore):

    def __init__(self, client, bucket: str, region: str):
        super().__init__(bucket, region)
        self.client = client

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        return error.response.get("Error", {}).get("Code") in _MISSING_CODES

    def put(self, key, data, content_type=None, metadata=None):
        content_type = content_type or guess_content_type(key)
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            Metadata={k: str(v) for k, v in (metadata or {}).items()},
        )
        logger.info(f"Stored s3://{self.bucket}/{key} ({len(data)} bytes)")
        return ObjectInfo(key=key, content_type=content_type, size=len(data),
                          last_modified=datetime.now(timezone.utc), metadata=dict(metadata or {}))

    def get(self, key):
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                raise ObjectNotFound(key) from e
            raise
        return response["Body"].read()

    def head(self, key):
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                raise ObjectNotFound(key) from e
            raise
        return ObjectInfo(
            key=key,
            content_type=response.get("ContentType") or "",
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            metadata=response.get("Metadata") or {},
        )

    def list(self, prefix="", limit=20, continuation_token=None):
        kwargs = {"Bucket": self.bucket, "Prefix": prefix or "", "MaxKeys": int(limit)}
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token
        response = self.client.list_objects_v2(**kwargs)

        objects = [
            ObjectInfo(
                key=item.get("Key", ""),
                content_type=guess_content_type(item.get("Key", "")),
                size=item.get("Size", 0),
                last_modified=item.get("LastModified"),
            )
            for item in response.get("Contents", [])
        ]
        return {
            "objects": objects,
            "isTruncated": bool(response.get("IsTruncated")),
            "nextContinuationToken": response.get("NextContinuationToken"),
        }


# =============================================================================
# MEMORY BACKEND
# =============================================================================
class MemoryObjectStore(ObjectStore):

    def __init__(self, bucket: str = "local-media", region: str = "local"):
        super().__init__(bucket, region)
        self._objects: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def put(self, key, data, content_type=None, metadata=None):
        info = ObjectInfo(
            key=key,
            content_type=content_type or guess_content_type(key),
            size=len(data),
            last_modified=datetime.now(timezone.utc),
            metadata={k: str(v) for k, v in (metadata or {}).items()},
        )
        with self._lock:
            self._objects[key] = {"data": bytes(data), "info": info}
        return info

    def get(self, key):
        entry = self._objects.get(key)
        if entry is None:
            raise ObjectNotFound(key)
        return entry["data"]

    def head(self, key):
        entry = self._objects.get(key)
        if entry is None:
            raise ObjectNotFound(key)
        return entry["info"]

    def list(self, prefix="", limit=20, continuation_token=None):
        with self._lock:
            keys = sorted(k for k in self._objects if k.startswith(prefix or ""))
        if continuation_token:
            keys = [k for k in keys if k > continuation_token]
        page: List[str] = keys[:int(limit)]
        truncated = len(keys) > len(page)
        return {
            "objects": [self._objects[k]["info"] for k in page],
            "isTruncated": truncated,
            "nextContinuationToken": page[-1] if truncated and page else None,
        }
