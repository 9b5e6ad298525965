# =============================================================================
# NEWSLETTER HANDLER - newsletter_subscribe
# =============================================================================
# Subscriptions are keyed by email and written with a conditional insert, so
# repeated requests for one address never create a second record.
# =============================================================================

import logging
import uuid

from handlers.base import EventHandler, iso_now, normalize_email
from src.runtime.event import EventType

logger = logging.getLogger(__name__)

SUBSCRIBED = "You have been successfully subscribed to our newsletter"
ALREADY_SUBSCRIBED = "You are already subscribed to our newsletter"


class NewsletterSubscribeHandler(EventHandler):
    """Subscribe an email address to the newsletter."""
    event_type = EventType.NEWSLETTER_SUBSCRIBE

    def handle(self, event):
        email = normalize_email(event.get("email"))
        name = event.get("name")
        logger.info(f"Newsletter subscription request email={email}")

        if not email:
            return {"success": False, "message": "Missing email"}

        now = iso_now()
        created = self.store.subscriptions.insert_if_absent({
            "email": email,
            "id": str(uuid.uuid4()),
            "createdAt": now,
        })
        if not created:
            logger.info(f"Email already subscribed email={email}")
            return {"success": True, "alreadySubscribed": True, "message": ALREADY_SUBSCRIBED}

        self._remember_email(email, name, now)

        logger.info(f"Newsletter subscription successful email={email}")
        return {"success": True, "alreadySubscribed": False, "message": SUBSCRIBED}

    def _remember_email(self, email: str, name, now: str):
        """Keep the emails collection in step, filling a name that was never set."""
        existing = self.store.emails.get(email)
        if existing is None:
            doc = {"email": email, "createdAt": now}
            if name:
                doc["name"] = name
            self.store.emails.insert_if_absent(doc)
        elif name and not existing.get("name"):
            self.store.emails.update(email, set_fields={"name": name})
