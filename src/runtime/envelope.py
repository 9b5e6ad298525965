# =============================================================================
# Response Envelope - Transport Container for Handler Outcomes
# =============================================================================
# Every invocation ends with exactly one ResponseEnvelope:
#   {statusCode, headers, body}   (body is a JSON string)
#
# 200 for a handler outcome, 400 for validation errors, 500 for anything else.
# Request-style invocations get permissive CORS headers.
# =============================================================================

import base64
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from src.runtime.errors import RuntimeFault, ValidationError
from src.runtime.event import Attachment
from src.runtime.parse_event import RequestInfo

ALLOWED_METHODS = "GET,POST,PUT,DELETE,OPTIONS,PATCH"
ALLOWED_HEADERS = "Content-Type,Authorization"


@dataclass(frozen=True)
class ResponseEnvelope:
    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "body": self.body,
        }


def _json_default(obj: Any) -> Any:
    """JSON fallback for values produced by storage clients."""
    if isinstance(obj, Decimal):
        return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, Attachment):
        return obj.to_dict()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def jdump(x: Any) -> str:
    """JSON dump with defaults for non-serializable types."""
    return json.dumps(x, ensure_ascii=False, default=_json_default)


def cors_headers(origin: Optional[str] = None) -> Dict[str, str]:
    """CORS headers echoing the caller's origin, or `*` when it declared none."""
    headers = {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Expose-Headers": ALLOWED_HEADERS,
    }
    if origin:
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Vary"] = "Origin"
    return headers


def _headers_for(request: Optional[RequestInfo]) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if request is not None and request.is_request:
        headers.update(cors_headers(request.origin))
    return headers


def success_envelope(outcome: Any, request: RequestInfo = None) -> ResponseEnvelope:
    """Wrap a handler outcome."""
    return ResponseEnvelope(status_code=200, body=jdump(outcome), headers=_headers_for(request))


def error_envelope(error: BaseException, request: RequestInfo = None) -> ResponseEnvelope:
    """Wrap a failure. Validation errors are client errors, everything else is a 500."""
    if isinstance(error, ValidationError):
        status_code = error.status_code
        message = str(error)
    else:
        status_code = 500
        message = str(error) if isinstance(error, RuntimeFault) else f"Internal error: {error}"

    body = {
        "success": False,
        "message": message,
        "error": type(error).__name__,
    }
    return ResponseEnvelope(status_code=status_code, body=jdump(body), headers=_headers_for(request))


def build_envelope(outcome: Any = None, error: BaseException = None,
                   request: RequestInfo = None) -> ResponseEnvelope:
    """Build the envelope for an outcome or a propagated failure."""
    if error is not None:
        return error_envelope(error, request)
    return success_envelope(outcome, request)


def generic_success(details: Dict[str, Any] = None, request: RequestInfo = None) -> Dict[str, Any]:
    """Envelope used when the worker succeeded but its payload is unreadable."""
    body = {"message": "Success", "code": 0}
    if details:
        body.update(details)
    return ResponseEnvelope(status_code=200, body=jdump(body), headers=_headers_for(request)).to_dict()
