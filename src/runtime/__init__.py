# =============================================================================
# Runtime Package - Normalize, Dispatch, Bridge
# =============================================================================
# Provides a single core dispatch layer invokable via:
# - API Gateway (HTTP), through the thin bridge stub and a worker process
# - Lambda direct invoke (in-process)
# - CLI (developer/admin tooling)
# =============================================================================

from src.runtime.bridge import BridgeResult, invoke, resolve_result, run_worker
from src.runtime.deps import Deps, create_deps
from src.runtime.dispatch import Dispatcher, build_registry
from src.runtime.envelope import ResponseEnvelope, build_envelope
from src.runtime.errors import (
    BridgeTransportError,
    HandlerError,
    MissingType,
    UnknownEventType,
    ValidationError,
)
from src.runtime.event import CanonicalEvent, EventType
from src.runtime.parse_event import describe_request, normalize_event

__all__ = [
    "BridgeResult",
    "invoke",
    "resolve_result",
    "run_worker",
    "Deps",
    "create_deps",
    "Dispatcher",
    "build_registry",
    "ResponseEnvelope",
    "build_envelope",
    "BridgeTransportError",
    "HandlerError",
    "MissingType",
    "UnknownEventType",
    "ValidationError",
    "CanonicalEvent",
    "EventType",
    "describe_request",
    "normalize_event",
]
