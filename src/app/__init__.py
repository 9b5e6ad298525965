# =============================================================================
# Application Entry Points
# =============================================================================
# bridge_handler - thin Lambda stub, runs each invocation in a worker process
# worker         - the worker process itself (python -m src.app.worker)
# direct_handler - in-process normalize/dispatch/envelope
#
# Nothing is imported here: the worker runs as `-m src.app.worker` and must
# not be imported by its own package first.
# =============================================================================
