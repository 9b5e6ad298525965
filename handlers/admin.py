# =============================================================================
# ADMIN HANDLER - admin_connect
# =============================================================================
import hmac
import logging
import secrets

from handlers.base import EventHandler, iso_now, normalize_email
from src.runtime.event import EventType

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


def generate_token() -> str:
    """64 hex characters of session token."""
    return secrets.token_hex(32)


class AdminConnectHandler(EventHandler):
    """Check admin credentials and issue a fresh token."""
    event_type = EventType.ADMIN_CONNECT

    def handle(self, event):
        email = normalize_email(event.get("email"))
        password = event.get("password")
        logger.info(f"Admin connection attempt email={email}")

        admin = self.store.admin.get(email) if email else None
        if admin is None:
            logger.warning(f"Admin not found email={email}")
            return {"success": False, "message": INVALID_CREDENTIALS}

        stored = str(admin.get("password") or "")
        if not hmac.compare_digest(stored.encode("utf-8"), str(password or "").encode("utf-8")):
            logger.warning(f"Invalid password for admin email={email}")
            return {"success": False, "message": INVALID_CREDENTIALS}

        token = generate_token()
        self.store.admin.update(email, set_fields={"token": token, "updatedAt": iso_now()})

        logger.info(f"Admin connected successfully email={email}")
        return {"success": True, "token": token}
