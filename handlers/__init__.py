# =============================================================================
# Blog Event Handlers
# =============================================================================
# One handler class per EventType.
#
# ARCHITECTURE:
#   handlers/
#   ├── __init__.py      # This file - HANDLER_CLASSES registry source
#   ├── base.py          # EventHandler base class and shared helpers
#   ├── posts.py         # post_* and posts_* handlers
#   ├── media.py         # get_media
#   ├── admin.py         # admin_connect
#   └── newsletter.py    # newsletter_subscribe
#
# TO ADD A NEW HANDLER:
#   1. Add the tag to src.runtime.event.EventType
#   2. Subclass EventHandler with `event_type` set to the new tag
#   3. Add the class to HANDLER_CLASSES below
#   The dispatcher refuses to start until every tag has exactly one handler.
# =============================================================================

from handlers.admin import AdminConnectHandler
from handlers.base import EventHandler
from handlers.media import GetMediaHandler
from handlers.newsletter import NewsletterSubscribeHandler
from handlers.posts import (
    PostCreateHandler,
    PostGetHandler,
    PostsGetAllHandler,
    PostsGetDeltaHandler,
    PostsGetFilteredHandler,
    PostUpdateHandler,
)

HANDLER_CLASSES = (
    # Posts
    PostCreateHandler,
    PostUpdateHandler,
    PostGetHandler,
    PostsGetAllHandler,
    PostsGetDeltaHandler,
    PostsGetFilteredHandler,
    # Media
    GetMediaHandler,
    # Admin
    AdminConnectHandler,
    # Newsletter
    NewsletterSubscribeHandler,
)

__all__ = [
    "HANDLER_CLASSES",
    "EventHandler",
    "AdminConnectHandler",
    "GetMediaHandler",
    "NewsletterSubscribeHandler",
    "PostCreateHandler",
    "PostGetHandler",
    "PostsGetAllHandler",
    "PostsGetDeltaHandler",
    "PostsGetFilteredHandler",
    "PostUpdateHandler",
]
