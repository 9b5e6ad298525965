# =============================================================================
# Canonical Event - Normalized Event Container
# =============================================================================
# Every inbound shape (JSON string, parsed object, API Gateway proxy event,
# multipart form) is normalized into a CanonicalEvent before dispatch.
# =============================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(str, Enum):
    """Closed set of event types the dispatcher can route."""
    # Posts
    POST_CREATE = "post_create"
    POST_UPDATE = "post_update"
    POST_GET = "post_get"
    POSTS_GET_ALL = "posts_get_all"
    POSTS_GET_DELTA = "posts_get_delta"
    POSTS_GET_FILTERED = "posts_get_filtered"

    # Media
    GET_MEDIA = "get_media"

    # Admin
    ADMIN_CONNECT = "admin_connect"

    # Newsletter
    NEWSLETTER_SUBSCRIBE = "newsletter_subscribe"

    @classmethod
    def lookup(cls, value: Any) -> Optional["EventType"]:
        """Resolve a raw tag to a member, or None when it is not registered."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Attachment:
    """A file uploaded through a multipart form field."""
    name: str
    content_type: str
    content: bytes
    field: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "contentType": self.content_type,
            "size": self.size,
            "field": self.field,
        }


@dataclass
class CanonicalEvent:
    """
    Normalized event.

    Attributes:
        type: Raw type tag, or None when the input carried none. Unknown tags
            are kept as-is so the dispatcher can report them precisely.
        attributes: Every other field of the request, in arrival order.
    """
    type: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> Optional[EventType]:
        return EventType.lookup(self.type) if self.type else None

    @property
    def is_empty(self) -> bool:
        return self.type is None and not self.attributes

    @property
    def attachments(self) -> List[Attachment]:
        return [a for a in self.attributes.get("mediaFiles") or [] if isinstance(a, Attachment)]

    def get(self, key: str, default: Any = None) -> Any:
        """Get value from attributes."""
        return self.attributes.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dict (attachments reduced to their metadata)."""
        attributes = dict(self.attributes)
        if "mediaFiles" in attributes:
            attributes["mediaFiles"] = [
                a.to_dict() if isinstance(a, Attachment) else a
                for a in attributes["mediaFiles"] or []
            ]
        if self.type is None:
            return attributes
        return {"type": self.type, **attributes}
