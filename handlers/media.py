# =============================================================================
# MEDIA HANDLER - get_media
# =============================================================================
# id given   -> metadata + public URL (or base64 content when `stream` is set)
# id omitted -> paginated listing by prefix
# =============================================================================

import base64
import logging

from botocore.exceptions import ClientError

from handlers.base import EventHandler, as_int
from src.runtime.errors import ObjectNotFound
from src.runtime.event import EventType

logger = logging.getLogger(__name__)


class GetMediaHandler(EventHandler):
    """Fetch one media object or list media."""
    event_type = EventType.GET_MEDIA

    def handle(self, event):
        media_id = event.get("id")
        logger.info(f"Processing get media event id={media_id} stream={event.get('stream')}")
        if media_id:
            return self._get_one(str(media_id), bool(event.get("stream")))
        return self._list(event)

    def _get_one(self, key: str, stream: bool):
        try:
            info = self.media.head(key)
            if stream:
                content = self.media.get(key)
                return {
                    "success": True,
                    "mediaContent": base64.b64encode(content).decode("ascii"),
                    "contentType": info.content_type,
                    "fileName": key.split("/")[-1] or key,
                }
        except ObjectNotFound as e:
            logger.warning(f"Media object not found key={key}")
            return {
                "success": False,
                "message": "Media not found",
                "error": str(e),
                "s3Key": key,
                "bucketName": self.media.bucket,
            }
        except ClientError as e:
            logger.exception(f"Error retrieving media key={key}: {e}")
            return {"success": False, "message": "Failed to retrieve media"}

        metadata = {
            "contentType": info.content_type,
            "size": info.size,
            "lastModified": info.last_modified,
            **info.metadata,
        }
        return {
            "success": True,
            "media": {
                "id": key,
                "type": info.media_type,
                "s3Key": key,
                "url": self.media.public_url(key),
                "metadata": metadata,
            },
        }

    def _list(self, event):
        prefix = event.get("prefix") or ""
        limit = as_int(event.get("limit"), self.deps.config["MEDIA_LIST_LIMIT"])
        try:
            listing = self.media.list(prefix=prefix, limit=limit,
                                      continuation_token=event.get("continuationToken"))
        except ClientError as e:
            logger.exception(f"Error listing media prefix={prefix!r}: {e}")
            return {"success": False, "message": "Failed to list media"}

        media = []
        for info in listing["objects"]:
            file_name = info.key.split("/")[-1] or info.key
            media.append({
                "id": info.key,
                "type": info.media_type,
                "s3Key": info.key,
                "url": self.media.public_url(info.key),
                "metadata": {
                    "contentType": info.content_type,
                    "size": info.size,
                    "lastModified": info.last_modified,
                    "fileName": file_name,
                },
            })

        return {
            "success": True,
            "media": media,
            "total": len(media),
            "isTruncated": listing["isTruncated"],
            "nextContinuationToken": listing["nextContinuationToken"],
        }
