# =============================================================================
# Bridge Handler - Thin Lambda Entry Stub
# =============================================================================
# The host only loads this module. All real work happens in a worker process
# (src.app.worker) started per invocation by the process bridge.
#
# Lambda handler setting: src.app.bridge_handler.lambda_handler
# =============================================================================

import logging
from typing import Any, Dict

from src.runtime.bridge import invoke
from src.runtime.deps import load_config
from src.runtime.envelope import jdump

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def summarize_invocation(event: Any) -> Any:
    """Invocation for logging, with request bodies reduced to their length."""
    if not isinstance(event, dict):
        return event
    summary = dict(event)
    body = summary.get("body")
    if isinstance(body, (str, bytes)) and len(body) > 256:
        summary["body"] = f"<{len(body)} bytes>"
    return summary


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda entry point.

    Returns the worker's response envelope. Raises BridgeTransportError when
    the worker failed without a trustworthy result, so the platform records
    the invocation as failed.
    """
    if load_config()["LOG_RAW_EVENTS"]:
        logger.info("RAW_EVENT=%s", jdump(summarize_invocation(event)))

    response = invoke(event)

    logger.info(f"Bridge resolved statusCode={response.get('statusCode')}")
    return response
