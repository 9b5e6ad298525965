# Base utilities for all handlers
# Every handler is a class bound to exactly one EventType and built with the
# worker's shared Deps container.
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from src.runtime.deps import Deps
from src.runtime.event import Attachment, CanonicalEvent, EventType
from src.runtime.media_store import media_type_for

logger = logging.getLogger(__name__)


class EventHandler:
    """
    Handler capability: `handle(event) -> outcome` for one event type.

    Subclasses set `event_type` and implement `handle`. Collaborator failures
    propagate; the dispatcher logs and re-raises them.
    """
    event_type: EventType = None

    def __init__(self, deps: Deps):
        self.deps = deps

    @property
    def store(self):
        return self.deps.store

    @property
    def media(self):
        return self.deps.media

    def handle(self, event: CanonicalEvent) -> Dict[str, Any]:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}({self.event_type.value if self.event_type else None})"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================
def iso_now() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (with or without `Z`) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def as_int(value: Any, default: int) -> int:
    """Integer from a form/query value, falling back to `default`."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def normalize_email(value: Any) -> str:
    """Emails are keys: compared trimmed and lowercased."""
    return str(value or "").strip().lower()


def safe(s: Optional[str]) -> str:
    """Sanitize string for use in object keys."""
    if not s:
        return "unknown"
    return re.sub(r"[^a-zA-Z0-9=._\-]+", "_", s)


def store_attachments(deps: Deps, owner_id: str,
                      attachments: List[Attachment]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Upload attachments to the object store.

    A failing file is logged and skipped; the rest are still stored.

    Returns:
        (image records for the post, skipped file descriptions)
    """
    images: List[Dict[str, Any]] = []
    skipped: List[Dict[str, Any]] = []
    prefix = deps.config["MEDIA_PREFIX"]

    for attachment in attachments:
        key = f"{prefix}{owner_id}/{uuid.uuid4().hex}-{safe(attachment.name)}"
        try:
            info = deps.media.put(
                key,
                attachment.content,
                content_type=attachment.content_type,
                metadata={"name": attachment.name, "size": attachment.size},
            )
        except Exception as e:
            logger.exception(f"Failed to store attachment {attachment.name}: {e}")
            skipped.append({"name": attachment.name, "error": str(e)})
            continue

        images.append({
            "link": deps.media.public_url(key),
            "type": media_type_for(info.content_type),
            "metadata": {
                "name": attachment.name,
                "size": attachment.size,
                "contentType": info.content_type,
                "s3Key": key,
            },
        })

    return images, skipped
