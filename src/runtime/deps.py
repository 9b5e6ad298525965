# =============================================================================
# Dependency Injection Container
# =============================================================================
# Provides lazy-loaded AWS clients and the shared storage handles to handlers.
# One Deps is built per worker process and passed by reference into the
# dispatcher and every handler. Handlers never create their own clients.
# =============================================================================

import logging
import os
import shlex
import sys
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, List, Optional

import boto3

from src.runtime.media_store import MemoryObjectStore, ObjectStore, S3ObjectStore
from src.runtime.storage import ADMIN, EMAILS, POSTS, SUBSCRIPTIONS, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_REGION = "sa-east-1"
DEFAULT_EVENT_VAR = "BLOG_LAMBDA_EVENT"


def _env_bool(key: str, default: bool = False) -> bool:
    return os.environ.get(key, str(default)).lower() == "true"


def _env_int(key: str, default: Optional[int] = None) -> Optional[int]:
    raw = os.environ.get(key, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {key}={raw!r}")
        return default


def load_config() -> Dict[str, Any]:
    """Environment configuration."""
    prefix = os.environ.get("TABLE_PREFIX", "gb-")
    return {
        "AWS_REGION": os.environ.get("AWS_REGION", DEFAULT_REGION),
        "STORAGE_BACKEND": os.environ.get("STORAGE_BACKEND", "dynamodb").lower(),
        "POSTS_TABLE_NAME": os.environ.get("POSTS_TABLE_NAME", f"{prefix}posts"),
        "ADMIN_TABLE_NAME": os.environ.get("ADMIN_TABLE_NAME", f"{prefix}admin"),
        "SUBSCRIPTIONS_TABLE_NAME": os.environ.get("SUBSCRIPTIONS_TABLE_NAME", f"{prefix}subscriptions"),
        "EMAILS_TABLE_NAME": os.environ.get("EMAILS_TABLE_NAME", f"{prefix}emails"),
        "MEDIA_BUCKET_NAME": os.environ.get("MEDIA_BUCKET_NAME", "gb-media"),
        "MEDIA_REGION": os.environ.get("MEDIA_REGION", DEFAULT_REGION),
        "MEDIA_PREFIX": os.environ.get("MEDIA_PREFIX", "posts/"),
        "MEDIA_LIST_LIMIT": _env_int("MEDIA_LIST_LIMIT", 20),
        "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO").upper(),
        "WORKER_EVENT_VAR": os.environ.get("WORKER_EVENT_VAR", DEFAULT_EVENT_VAR),
        "WORKER_COMMAND": os.environ.get("WORKER_COMMAND", ""),
        "WORKER_TIMEOUT_SECONDS": _env_int("WORKER_TIMEOUT_SECONDS"),
        "LOG_RAW_EVENTS": _env_bool("LOG_RAW_EVENTS", True),
    }


def worker_command(config: Dict[str, Any] = None) -> List[str]:
    """Command line that starts a worker process."""
    config = config or load_config()
    if config.get("WORKER_COMMAND"):
        return shlex.split(config["WORKER_COMMAND"])
    return [sys.executable, "-m", "src.app.worker"]


@dataclass
class Deps:
    """
    Dependency injection container for handlers.

    Clients and stores are lazy-loaded on first access and then reused for the
    lifetime of the worker process. Tests replace them by assignment:

        deps = create_deps(store=DocumentStore.in_memory(), media=MemoryObjectStore())
    """
    region: str = field(default_factory=lambda: os.environ.get("AWS_REGION", DEFAULT_REGION))

    # ==========================================================================
    # Configuration
    # ==========================================================================

    @cached_property
    def config(self) -> Dict[str, Any]:
        return load_config()

    @property
    def in_memory(self) -> bool:
        return self.config["STORAGE_BACKEND"] == "memory"

    # ==========================================================================
    # AWS Clients (lazy-loaded)
    # ==========================================================================

    @cached_property
    def dynamodb(self):
        """DynamoDB resource."""
        return boto3.resource("dynamodb", region_name=self.region)

    @cached_property
    def s3(self):
        """S3 client."""
        return boto3.client("s3", region_name=self.config["MEDIA_REGION"])

    # ==========================================================================
    # Shared storage handles
    # ==========================================================================

    @cached_property
    def store(self) -> DocumentStore:
        """Document store shared by every handler in this process."""
        if self.in_memory:
            logger.info("Using in-memory document store")
            return DocumentStore.in_memory()
        return DocumentStore.dynamodb(self.dynamodb, {
            POSTS: self.config["POSTS_TABLE_NAME"],
            ADMIN: self.config["ADMIN_TABLE_NAME"],
            SUBSCRIPTIONS: self.config["SUBSCRIPTIONS_TABLE_NAME"],
            EMAILS: self.config["EMAILS_TABLE_NAME"],
        })

    @cached_property
    def media(self) -> ObjectStore:
        """Object store for post media."""
        bucket = self.config["MEDIA_BUCKET_NAME"]
        region = self.config["MEDIA_REGION"]
        if self.in_memory:
            logger.info("Using in-memory object store")
            return MemoryObjectStore(bucket=bucket, region=region)
        return S3ObjectStore(self.s3, bucket=bucket, region=region)


def create_deps(region: str = None, store: DocumentStore = None,
                media: ObjectStore = None) -> Deps:
    """Create a new Deps instance, optionally with pre-built stores."""
    deps = Deps(region=region or os.environ.get("AWS_REGION", DEFAULT_REGION))
    if store is not None:
        deps.store = store
    if media is not None:
        deps.media = media
    return deps
