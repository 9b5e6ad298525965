# =============================================================================
# Runtime Errors
# =============================================================================
# Exception hierarchy shared by the normalizer, dispatcher, envelope builder
# and process bridge.
#
#   RuntimeFault
#   ├── ValidationError        -> 400 envelope, worker exits 0
#   │   ├── MissingType
#   │   └── UnknownEventType
#   ├── HandlerError           -> 500 envelope, worker exits non-zero
#   ├── BridgeTransportError   -> hard failure of the outer invocation
#   ├── RegistryError          -> registry does not cover every event type
#   └── ObjectNotFound         -> object store key is missing
# =============================================================================

from typing import Optional


class RuntimeFault(Exception):
    """Base class for every error raised by the runtime."""


class ValidationError(RuntimeFault):
    """The event cannot be routed. Reported to the client, never a crash."""

    status_code = 400


class MissingType(ValidationError):
    def __init__(self):
        super().__init__("Missing event type")


class UnknownEventType(ValidationError):
    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type}")


class HandlerError(RuntimeFault):
    """A handler failed while processing an event."""

    status_code = 500

    def __init__(self, event_type: str, cause: BaseException):
        self.event_type = event_type
        self.cause = cause
        super().__init__(f"Error handling event {event_type}: {cause}")


class BridgeTransportError(RuntimeFault):
    """The worker process did not produce a trustworthy result."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class RegistryError(RuntimeFault):
    """Handler registry does not map every event type to exactly one handler."""


class ObjectNotFound(RuntimeFault):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found: {key}")
