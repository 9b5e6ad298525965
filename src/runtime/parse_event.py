# =============================================================================
# Event Normalizer - Detect and Parse Invocation Shapes
# =============================================================================
# Detects the shape of an inbound invocation and normalizes it into a
# CanonicalEvent. Supports: empty input, JSON string, pre-parsed object,
# API Gateway proxy event (JSON, base64 or multipart body).
#
# The normalizer never raises. Anything it cannot read degrades toward an
# empty event, so the dispatcher reports a precise "missing type" error.
# =============================================================================

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from email import policy
from email.parser import BytesParser
from typing import Any, Dict, List, Optional

from src.runtime.event import Attachment, CanonicalEvent

logger = logging.getLogger(__name__)

# Attributes that clients send as JSON-encoded strings (multipart forms, query strings)
LIST_FIELDS = ("tags", "links", "images")

# Attributes coerced from "true"/"false" strings. All others pass through unchanged.
BOOLEAN_FIELDS = ("published", "stream")

ATTACHMENTS_FIELD = "mediaFiles"


class InputShape:
    """Invocation shape identifiers."""
    EMPTY = "empty"
    JSON_STRING = "json_string"
    OBJECT = "object"
    API_GATEWAY = "api_gateway"
    MULTIPART = "multipart"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ParseResult:
    """Outcome of a parse attempt. Callers decide whether failure is fatal."""
    ok: bool
    value: Any = None
    error: Optional[str] = None

    def value_or(self, default: Any) -> Any:
        return self.value if self.ok else default


@dataclass(frozen=True)
class RequestInfo:
    """What the envelope builder needs to know about the caller."""
    is_request: bool = False
    origin: Optional[str] = None


def parse_json(text: Any) -> ParseResult:
    """Parse a JSON document without raising."""
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            return ParseResult(False, error=str(e))
    if not isinstance(text, str):
        return ParseResult(False, error=f"expected str, got {type(text).__name__}")
    try:
        return ParseResult(True, json.loads(text))
    except json.JSONDecodeError as e:
        return ParseResult(False, error=str(e))


def get_header(headers: Any, name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    if not isinstance(headers, dict):
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if isinstance(key, str) and key.lower() == wanted:
            return value
    return None


def detect_input_shape(raw: Any) -> str:
    """
    Detect the shape of an invocation.

    Returns one of: empty, json_string, object, api_gateway, multipart, unknown
    """
    if raw is None:
        return InputShape.EMPTY
    if isinstance(raw, (str, bytes, bytearray)):
        return InputShape.JSON_STRING if raw.strip() else InputShape.EMPTY
    if not isinstance(raw, dict):
        return InputShape.UNKNOWN
    if not raw:
        return InputShape.EMPTY

    headers = raw.get("headers")
    content_type = get_header(headers, "content-type") or ""
    if content_type.lower().startswith("multipart/form-data") and raw.get("body"):
        return InputShape.MULTIPART

    # API Gateway HTTP API (v2) or REST API (v1)
    if "requestContext" in raw or ("headers" in raw and "body" in raw):
        return InputShape.API_GATEWAY

    return InputShape.OBJECT


def _decode_body(event: Dict[str, Any]) -> ParseResult:
    """Return the raw body bytes of a proxy event."""
    body = event.get("body") or ""
    if isinstance(body, (bytes, bytearray)):
        return ParseResult(True, bytes(body))
    if not isinstance(body, str):
        return ParseResult(False, error=f"unsupported body type {type(body).__name__}")
    if event.get("isBase64Encoded"):
        try:
            return ParseResult(True, base64.b64decode(body, validate=False))
        except (binascii.Error, ValueError) as e:
            return ParseResult(False, error=f"invalid base64 body: {e}")
    return ParseResult(True, body.encode("utf-8"))


def _parse_object(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a pre-parsed object, unwrapping one level of `body`."""
    if "type" in event or "body" not in event:
        return dict(event)

    body = event.get("body")
    if isinstance(body, dict):
        return dict(body)
    if not body:
        return {}

    decoded = _decode_body(event)
    if not decoded.ok:
        logger.warning(f"Could not read request body: {decoded.error}")
        return {}

    parsed = parse_json(decoded.value)
    if not parsed.ok:
        logger.warning(f"Request body is not valid JSON: {parsed.error}")
        return {}
    if not isinstance(parsed.value, dict):
        logger.warning(f"Request body is not a JSON object: {type(parsed.value).__name__}")
        return {}
    return parsed.value


def _parse_api_gateway_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse API Gateway HTTP API or REST API event."""
    payload = _parse_object({"body": event.get("body"), "isBase64Encoded": event.get("isBase64Encoded")})

    # Merge query parameters into payload
    query_params = event.get("queryStringParameters") or {}
    for key, value in query_params.items():
        if key not in payload:
            payload[key] = value

    return payload


def _parse_multipart_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse a multipart/form-data proxy event.

    File fields become Attachment records under `mediaFiles`; plain fields are
    merged as top-level attributes.
    """
    content_type = get_header(event.get("headers"), "content-type") or ""
    decoded = _decode_body(event)
    if not decoded.ok:
        logger.warning(f"Could not read multipart body: {decoded.error}")
        return {}

    raw = b"Content-Type: " + content_type.encode("latin-1", errors="replace") + b"\r\n\r\n" + decoded.value
    message = BytesParser(policy=policy.HTTP).parsebytes(raw)
    if not message.is_multipart():
        logger.warning("Multipart request without a readable boundary")
        return {}

    payload: Dict[str, Any] = {}
    attachments: List[Attachment] = []

    for part in message.iter_parts():
        field_name = part.get_param("name", header="content-disposition")
        if not field_name:
            continue
        content = part.get_payload(decode=True) or b""
        filename = part.get_filename()

        if filename is not None:
            attachments.append(Attachment(
                name=filename,
                content_type=part.get_content_type(),
                content=content,
                field=field_name,
            ))
            logger.info(f"Found file: {filename} ({part.get_content_type()}, {len(content)} bytes)")
        else:
            charset = part.get_content_charset() or "utf-8"
            try:
                payload[field_name] = content.decode(charset, errors="replace")
            except LookupError:
                logger.warning(f"Unknown charset {charset!r} for field {field_name}, decoding as utf-8")
                payload[field_name] = content.decode("utf-8", errors="replace")

    if attachments:
        payload[ATTACHMENTS_FIELD] = attachments

    logger.info(f"Parsed multipart form: fields={len(payload)} files={len(attachments)}")
    return payload


def _coerce_known_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Parse JSON-encoded list fields and boolean-looking strings for known fields."""
    for key in LIST_FIELDS:
        value = payload.get(key)
        if not isinstance(value, str):
            continue
        parsed = parse_json(value)
        if parsed.ok and isinstance(parsed.value, list):
            payload[key] = parsed.value
        else:
            logger.warning(f"Failed to parse {key} JSON, keeping raw value: {parsed.error or 'not a list'}")

    for key in BOOLEAN_FIELDS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            payload[key] = value.strip().lower() == "true"

    return payload


def _to_canonical(payload: Dict[str, Any]) -> CanonicalEvent:
    attributes = dict(payload)
    event_type = attributes.pop("type", None)
    if event_type is not None and not isinstance(event_type, str):
        event_type = str(event_type)
    return CanonicalEvent(type=event_type or None, attributes=attributes)


def normalize_event(raw: Any) -> CanonicalEvent:
    """
    Normalize any supported invocation shape into one CanonicalEvent.

    Args:
        raw: None, a JSON string, a dict (plain or API Gateway proxy event)

    Returns:
        CanonicalEvent (empty when nothing could be read)
    """
    shape = detect_input_shape(raw)
    logger.info(f"Detected input shape: {shape}")

    if shape == InputShape.EMPTY:
        payload: Dict[str, Any] = {}

    elif shape == InputShape.JSON_STRING:
        parsed = parse_json(raw)
        if not parsed.ok:
            logger.warning(f"Invocation is not valid JSON, using empty event: {parsed.error}")
            payload = {}
        elif isinstance(parsed.value, dict):
            # A JSON string can itself hold a proxy event or a wrapped body
            return normalize_event(parsed.value) if parsed.value else CanonicalEvent()
        else:
            logger.warning(f"Invocation JSON is not an object: {type(parsed.value).__name__}")
            payload = {}

    elif shape == InputShape.MULTIPART:
        payload = _parse_multipart_event(raw)

    elif shape == InputShape.API_GATEWAY:
        payload = _parse_api_gateway_event(raw)

    elif shape == InputShape.OBJECT:
        payload = _parse_object(raw)

    else:
        logger.warning(f"Unsupported invocation type {type(raw).__name__}, using empty event")
        payload = {}

    return _to_canonical(_coerce_known_fields(payload))


def describe_request(raw: Any) -> RequestInfo:
    """Report whether the invocation is request-style and who the caller is."""
    if isinstance(raw, (str, bytes, bytearray)):
        raw = parse_json(raw).value_or(None)
    if not isinstance(raw, dict):
        return RequestInfo()

    headers = raw.get("headers")
    is_request = "requestContext" in raw or isinstance(headers, dict)
    origin = get_header(headers, "origin")
    return RequestInfo(is_request=is_request, origin=origin or None)
