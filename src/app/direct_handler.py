# =============================================================================
# Direct Invoke Handler
# =============================================================================
# In-process entry point: runs normalize -> dispatch -> envelope without a
# worker process. Used where the host can load the full runtime, by the CLI,
# and by tests.
# =============================================================================

import logging
from typing import Any, Dict

from src.runtime.deps import Deps, create_deps
from src.runtime.dispatch import Dispatcher
from src.app.worker import handle_invocation

logger = logging.getLogger(__name__)

_dispatcher = None


def get_dispatcher(deps: Deps = None) -> Dispatcher:
    """Dispatcher for this process; built on first use unless deps are given."""
    global _dispatcher
    if deps is not None:
        return Dispatcher(deps)
    if _dispatcher is None:
        _dispatcher = Dispatcher(create_deps())
    return _dispatcher


def direct_handler(event: Any, context: Any = None, deps: Deps = None) -> Dict[str, Any]:
    """
    Direct invoke entry point.

    Args:
        event: any supported invocation shape
        context: Lambda context (unused)
        deps: optional dependency container (tests, CLI)

    Returns:
        Response envelope dict
    """
    logger.info(f"DIRECT_HANDLER event keys: {list(event.keys()) if isinstance(event, dict) else type(event).__name__}")

    envelope, _ = handle_invocation(event, get_dispatcher(deps))
    return envelope.to_dict()
