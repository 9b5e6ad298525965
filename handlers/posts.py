# =============================================================================
# POST HANDLERS
# =============================================================================
# post_create, post_update, post_get,
# posts_get_all, posts_get_delta, posts_get_filtered
#
# Posts are stored with ISO-8601 UTC timestamps, so string comparison and
# sorting follow chronological order.
# =============================================================================

import logging
import uuid
from typing import Any, Dict

from handlers.base import EventHandler, as_int, iso_now, parse_iso, store_attachments
from src.runtime.event import CanonicalEvent, EventType

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10

# Fields a client may change through post_update
UPDATABLE_FIELDS = ("name", "description", "tags", "links", "images", "postal")


def _page_window(event: CanonicalEvent):
    page = as_int(event.get("page"), DEFAULT_PAGE)
    limit = as_int(event.get("limit"), DEFAULT_LIMIT)
    return page, limit, (page - 1) * limit


class PostCreateHandler(EventHandler):
    """Create a post, uploading any attached media files."""
    event_type = EventType.POST_CREATE

    def handle(self, event):
        logger.info(f"Creating new post name={event.get('name')!r}")

        now = iso_now()
        post_id = str(uuid.uuid4())
        images = list(event.get("images") or [])
        uploaded, skipped = store_attachments(self.deps, post_id, event.attachments)
        images.extend(uploaded)

        post: Dict[str, Any] = {
            "id": post_id,
            "name": event.get("name"),
            "description": event.get("description") or "",
            "tags": event.get("tags") or [],
            "links": event.get("links") or [],
            "images": images,
            "postal": event.get("postal") or 0,
            "published": bool(event.get("published", False)),
            "views": 0,
            "createdAt": now,
            "updatedAt": now,
        }
        if post["published"]:
            post["publishedAt"] = now

        self.store.posts.insert(post)

        logger.info(f"Post created successfully id={post_id} images={len(images)} skipped={len(skipped)}")
        result = {"success": True, "post": post}
        if skipped:
            result["skippedFiles"] = skipped
        return result


class PostUpdateHandler(EventHandler):
    """Update the provided fields of a post."""
    event_type = EventType.POST_UPDATE

    def handle(self, event):
        post_id = event.get("id")
        logger.info(f"Updating post id={post_id}")

        if not post_id:
            return {"success": False, "post": None, "message": "Missing post id"}

        now = iso_now()
        update: Dict[str, Any] = {"updatedAt": now}
        for key in UPDATABLE_FIELDS:
            if event.get(key) is not None:
                update[key] = event.get(key)

        existing = None
        published = event.get("published")
        if published is not None:
            update["published"] = bool(published)
            if update["published"]:
                # First publication sets publishedAt
                existing = self.store.posts.get(post_id)
                if existing and not existing.get("published"):
                    update["publishedAt"] = now

        skipped = []
        if event.attachments:
            if "images" not in update:
                existing = existing or self.store.posts.get(post_id)
                if existing is None:
                    logger.warning(f"Post not found for update id={post_id}")
                    return {"success": False, "post": None}
                update["images"] = list(existing.get("images") or [])
            uploaded, skipped = store_attachments(self.deps, post_id, event.attachments)
            update["images"] = list(update["images"]) + uploaded

        post = self.store.posts.find_one_and_update(post_id, update)
        if post is None:
            logger.warning(f"Post not found for update id={post_id}")
            return {"success": False, "post": None}

        logger.info(f"Post updated successfully id={post_id}")
        result = {"success": True, "post": post}
        if skipped:
            result["skippedFiles"] = skipped
        return result


class PostGetHandler(EventHandler):
    """Get one post and count the view."""
    event_type = EventType.POST_GET

    def handle(self, event):
        post_id = event.get("id")
        logger.info(f"Getting post id={post_id}")

        post = self.store.posts.get(post_id) if post_id else None
        if post is None:
            logger.warning(f"Post not found id={post_id}")
            return {"success": False, "post": None}

        updated = self.store.posts.update(post_id, increment={"views": 1})
        if updated is not None:
            post = updated
        else:
            post["views"] = (post.get("views") or 0) + 1

        logger.info(f"Post retrieved successfully id={post_id}")
        return {"success": True, "post": post}


class PostsGetAllHandler(EventHandler):
    """Published posts, newest first, paginated."""
    event_type = EventType.POSTS_GET_ALL

    def handle(self, event):
        page, limit, skip = _page_window(event)
        logger.info(f"Getting all posts page={page} limit={limit}")

        def published(doc):
            return doc.get("published") is True

        posts = self.store.posts.find(published, sort_by="publishedAt", descending=True,
                                      skip=skip, limit=limit)
        total = self.store.posts.count(published)

        logger.info(f"Posts retrieved successfully count={len(posts)} total={total}")
        return {"success": True, "posts": posts, "total": total, "page": page, "limit": limit}


class PostsGetDeltaHandler(EventHandler):
    """Published posts created or updated after `lastSyncDate`."""
    event_type = EventType.POSTS_GET_DELTA

    def handle(self, event):
        last_sync = parse_iso(event.get("lastSyncDate"))
        logger.info(f"Getting posts delta lastSyncDate={event.get('lastSyncDate')}")

        if last_sync is None:
            logger.warning(f"Invalid lastSyncDate: {event.get('lastSyncDate')!r}")
            return {"success": False, "posts": [], "message": "Invalid lastSyncDate"}

        def changed_since(doc):
            if doc.get("published") is not True:
                return False
            for key in ("updatedAt", "createdAt"):
                stamp = parse_iso(doc.get(key))
                if stamp is not None and stamp > last_sync:
                    return True
            return False

        posts = self.store.posts.find(changed_since, sort_by="updatedAt", descending=True)

        logger.info(f"Posts delta retrieved successfully count={len(posts)}")
        return {"success": True, "posts": posts}


class PostsGetFilteredHandler(EventHandler):
    """Posts filtered by published state and tags, paginated."""
    event_type = EventType.POSTS_GET_FILTERED

    def handle(self, event):
        page, limit, skip = _page_window(event)
        published = event.get("published")
        if published is None:
            published = True
        tags = event.get("tags")
        tags = {str(t) for t in tags} if isinstance(tags, list) and tags else None

        logger.info(f"Getting filtered posts published={published} tags={sorted(tags) if tags else None}")

        def matches(doc):
            if bool(doc.get("published")) != bool(published):
                return False
            if tags and not tags.intersection(str(t) for t in doc.get("tags") or []):
                return False
            return True

        posts = self.store.posts.find(matches, sort_by="publishedAt", descending=True,
                                      skip=skip, limit=limit)
        total = self.store.posts.count(matches)

        logger.info(f"Filtered posts retrieved successfully count={len(posts)} total={total}")
        return {"success": True, "posts": posts, "total": total, "page": page, "limit": limit}
