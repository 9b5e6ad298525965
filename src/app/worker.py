# =============================================================================
# Worker Process
# =============================================================================
# Entry point of the isolated worker spawned by the bridge:
#
#   python -m src.app.worker
#
# Reads the invocation from the event variable, runs
# normalize -> dispatch -> envelope, writes one framed envelope to stdout and
# exits 0 for a handled outcome, 1 for a worker fault. Logs go to stderr.
# =============================================================================

import logging
import os
import sys
from typing import Any, Tuple

from src.runtime.bridge import frame_result
from src.runtime.deps import DEFAULT_EVENT_VAR, create_deps, load_config
from src.runtime.dispatch import Dispatcher
from src.runtime.envelope import ResponseEnvelope, build_envelope, jdump
from src.runtime.errors import HandlerError, ValidationError
from src.runtime.parse_event import describe_request, normalize_event, parse_json

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAULT = 1


def read_invocation(event_var: str = None) -> Any:
    """Invocation from the environment channel. Empty or unreadable means `{}`."""
    raw = os.environ.get(event_var or DEFAULT_EVENT_VAR, "")
    if not raw.strip():
        return {}
    parsed = parse_json(raw)
    if not parsed.ok:
        logger.warning(f"Invocation variable is not valid JSON, using empty event: {parsed.error}")
        return {}
    return parsed.value


def handle_invocation(invocation: Any, dispatcher: Dispatcher) -> Tuple[ResponseEnvelope, int]:
    """
    Normalize, dispatch and wrap one invocation.

    Returns:
        (envelope, exit code)
    """
    request = describe_request(invocation)
    try:
        event = normalize_event(invocation)
        outcome = dispatcher.dispatch(event.type, event)
    except ValidationError as e:
        return build_envelope(error=e, request=request), EXIT_OK
    except Exception as e:
        if not isinstance(e, HandlerError):
            logger.exception(f"Invocation failed before dispatch: {e}")
        return build_envelope(error=e, request=request), EXIT_FAULT
    return build_envelope(outcome=outcome, request=request), EXIT_OK


def emit(envelope: ResponseEnvelope, stream=None) -> None:
    stream = stream or sys.stdout
    stream.write(frame_result(jdump(envelope.to_dict())))
    stream.flush()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def main() -> int:
    config = load_config()
    configure_logging(config["LOG_LEVEL"])
    invocation = read_invocation(config["WORKER_EVENT_VAR"])

    try:
        dispatcher = Dispatcher(create_deps())
    except Exception as e:
        logger.exception(f"Worker bootstrap failed: {e}")
        emit(build_envelope(error=e, request=describe_request(invocation)))
        return EXIT_FAULT

    envelope, code = handle_invocation(invocation, dispatcher)
    logger.info(f"Worker finished status={envelope.status_code} exit={code}")
    emit(envelope)
    return code


if __name__ == "__main__":
    sys.exit(main())
