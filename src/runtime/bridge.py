# =============================================================================
# Process Bridge
# =============================================================================
# Runs one invocation in an isolated worker process and turns whatever the
# worker left behind into a trustworthy result.
#
# Protocol:
#   parent -> worker : whole invocation as JSON in one environment variable
#   worker -> parent : exactly one JSON envelope on stdout between the
#                      RESULT_START / RESULT_END lines; exit 0 when the
#                      outcome is in the payload, non-zero on a worker fault
#
# Resolution (first matching row wins):
#   framed + JSON + exit 0              -> envelope
#   framed + JSON + exit !=0, <500      -> envelope (business error)
#   framed + JSON + exit !=0, >=500     -> BridgeTransportError(envelope message)
#   framed + bad JSON + exit 0          -> generic success
#   framed + bad JSON + exit !=0        -> BridgeTransportError(exit code)
#   no frame + exit 0                   -> generic success + output snippet
#   no frame + exit !=0                 -> BridgeTransportError(exit code, stderr)
#   spawn failure                       -> BridgeTransportError, immediately
# =============================================================================

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from src.runtime.deps import load_config, worker_command
from src.runtime.envelope import generic_success, jdump
from src.runtime.errors import BridgeTransportError
from src.runtime.parse_event import RequestInfo, describe_request, parse_json

logger = logging.getLogger(__name__)

RESULT_START = "===RESULT_START==="
RESULT_END = "===RESULT_END==="

SNIPPET_LIMIT = 500
STDERR_LIMIT = 2000
NO_STDERR = "<no stderr output>"


@dataclass(frozen=True)
class BridgeResult:
    """What one worker run left behind."""
    stdout: str
    stderr: str
    exit_code: int


def frame_result(payload: str) -> str:
    """Wrap one JSON document in sentinel lines."""
    return f"\n{RESULT_START}\n{payload}\n{RESULT_END}\n"


def extract_framed(stdout: str) -> Optional[str]:
    """
    Return the text of the last complete sentinel region, or None.

    Log lines before and after the region are ignored.
    """
    lines = stdout.splitlines()
    end = None
    for i in range(len(lines) - 1, -1, -1):
        if lines[i].strip() == RESULT_END:
            end = i
            break
    if end is None:
        return None
    for i in range(end - 1, -1, -1):
        if lines[i].strip() == RESULT_START:
            return "\n".join(lines[i + 1:end]).strip()
    return None


def _read_envelope(text: str) -> Optional[Dict[str, Any]]:
    parsed = parse_json(text)
    if not parsed.ok:
        logger.warning(f"Framed worker output is not valid JSON: {parsed.error}")
        return None
    envelope = parsed.value
    if not isinstance(envelope, dict) or not isinstance(envelope.get("statusCode"), int):
        logger.warning("Framed worker output is not a response envelope")
        return None
    return envelope


def _envelope_message(envelope: Dict[str, Any]) -> str:
    body = envelope.get("body")
    data = parse_json(body).value_or(body) if isinstance(body, str) else body
    if isinstance(data, dict):
        message = data.get("message") or data.get("error")
        if message:
            return str(message)
    return f"Worker failed with status {envelope.get('statusCode')}"


def _tail(text: str, limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else "..." + text[-limit:]


def exit_code_of(returncode: Optional[int]) -> int:
    """Shell-style exit code. A worker killed by signal N reports 128 + N."""
    if returncode is None:
        return -1
    if returncode < 0:
        return 128 - returncode
    return returncode


def resolve_result(result: BridgeResult, request: RequestInfo = None) -> Dict[str, Any]:
    """
    Resolve a finished worker run into a response envelope dict.

    Raises:
        BridgeTransportError: the run failed and no trustworthy payload exists
    """
    framed = extract_framed(result.stdout)
    code = result.exit_code

    if framed is not None:
        envelope = _read_envelope(framed)
        if envelope is not None:
            if code == 0 or envelope["statusCode"] < 500:
                return envelope
            raise BridgeTransportError(_envelope_message(envelope), exit_code=code, stderr=result.stderr)
        if code == 0:
            return generic_success(request=request)
        raise BridgeTransportError(
            f"Worker exited with code {code} and unreadable result payload",
            exit_code=code, stderr=result.stderr,
        )

    if code == 0:
        logger.warning("Worker exited cleanly without a framed result")
        return generic_success({"output": _tail(result.stdout, SNIPPET_LIMIT)}, request=request)

    stderr = _tail(result.stderr, STDERR_LIMIT) or NO_STDERR
    raise BridgeTransportError(f"Worker exited with code {code}: {stderr}", exit_code=code, stderr=result.stderr)


def run_worker(invocation: Any, command: List[str] = None, env: Mapping[str, str] = None,
               timeout: float = None, cwd: str = None, event_var: str = None) -> BridgeResult:
    """
    Spawn one worker for one invocation and wait for it to exit.

    Args:
        invocation: the inbound request, serialized to JSON for the worker
        command: worker command line (defaults to `python -m src.app.worker`)
        env: base environment (defaults to this process's environment)
        timeout: seconds before the worker is killed (None waits forever)
        cwd: worker working directory
        event_var: name of the environment variable carrying the invocation

    Raises:
        BridgeTransportError: the worker could not be started
    """
    config = load_config()
    command = list(command or worker_command(config))
    event_var = event_var or config["WORKER_EVENT_VAR"]

    worker_env = dict(os.environ if env is None else env)
    worker_env[event_var] = invocation if isinstance(invocation, str) else jdump(invocation if invocation is not None else {})

    logger.info(f"Spawning worker: {' '.join(command)}")
    try:
        proc = subprocess.Popen(
            command,
            cwd=cwd,
            env=worker_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Failed to spawn worker: {e}")
        raise BridgeTransportError(f"Failed to spawn worker: {e}") from e

    try:
        out, err = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.error(f"Worker exceeded {timeout}s, killing pid={proc.pid}")
        proc.kill()
        out, err = proc.communicate()

    code = exit_code_of(proc.returncode)
    logger.info(f"Worker process exited with code: {code}")
    return BridgeResult(
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        exit_code=code,
    )


def invoke(invocation: Any, **kwargs) -> Dict[str, Any]:
    """Run an invocation through a worker and resolve the outcome."""
    if "timeout" not in kwargs:
        kwargs["timeout"] = load_config()["WORKER_TIMEOUT_SECONDS"]
    result = run_worker(invocation, **kwargs)
    return resolve_result(result, describe_request(invocation))
