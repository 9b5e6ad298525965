#!/usr/bin/env python3
"""
Test suite for the runtime core.

Tests:
- Event normalization (empty, JSON string, object, API Gateway, multipart)
- Dispatcher registry and routing
- Response envelope builder and CORS headers
- Worker invocation handling
- Dependency injection container

Run with: pytest tests/test_runtime.py -v
Or: python tests/test_runtime.py
"""
import base64
import json
import os
import sys
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set required environment variables BEFORE imports
os.environ.setdefault("AWS_REGION", "sa-east-1")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("MEDIA_PREFIX", "posts/")

from src.runtime.deps import create_deps
from src.runtime.event import Attachment, CanonicalEvent, EventType
from src.runtime.media_store import MemoryObjectStore
from src.runtime.storage import DocumentStore


def memory_deps():
    return create_deps(store=DocumentStore.in_memory(), media=MemoryObjectStore())


def multipart_event(fields, files, boundary="----blogformboundary"):
    """API Gateway proxy event carrying a base64 multipart/form-data body."""
    chunks = []
    for name, value in fields.items():
        chunks.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n".encode("utf-8")
        )
    for name, (file_name, content_type, content) in files.items():
        chunks.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{file_name}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n".encode("utf-8") + content + b"\r\n"
        )
    chunks.append(f"--{boundary}--\r\n".encode("utf-8"))
    return {
        "requestContext": {"http": {"method": "POST"}},
        "headers": {"Content-Type": f"multipart/form-data; boundary={boundary}"},
        "body": base64.b64encode(b"".join(chunks)).decode("ascii"),
        "isBase64Encoded": True,
    }


class RecordingHandler:
    """Handler double that records which tag it served."""
    event_type = None
    calls = None

    def __init__(self, deps):
        self.deps = deps

    def handle(self, event):
        self.calls.append(self.event_type)
        return {"handled": self.event_type.value, "attributes": event.attributes}


def recording_classes(calls, skip=()):
    return [
        type(f"Recording_{tag.name}", (RecordingHandler,), {"event_type": tag, "calls": calls})
        for tag in EventType if tag not in skip
    ]


# =============================================================================
# TEST: Event Normalizer
# =============================================================================

class TestEventNormalizer:
    """Tests for normalize_event()."""

    def test_empty_inputs(self):
        from src.runtime.parse_event import normalize_event

        for raw in (None, "", "   ", {}):
            event = normalize_event(raw)
            assert event.type is None
            assert event.is_empty
        print("✓ Empty inputs normalize to an empty event")

    def test_json_string_matches_object(self):
        """A JSON string and the equivalent object normalize identically."""
        from src.runtime.parse_event import normalize_event

        payload = {"type": "post_get", "id": "abc", "page": 2}
        assert normalize_event(json.dumps(payload)) == normalize_event(payload)
        event = normalize_event(payload)
        assert event.type == "post_get"
        assert event.event_type == EventType.POST_GET
        assert event.attributes == {"id": "abc", "page": 2}
        print("✓ JSON string and object normalize identically")

    def test_invalid_json_string(self):
        from src.runtime.parse_event import normalize_event

        assert normalize_event("{not json").is_empty
        assert normalize_event("[1, 2, 3]").is_empty
        print("✓ Unreadable JSON strings degrade to an empty event")

    def test_body_unwrapped_one_level(self):
        from src.runtime.parse_event import normalize_event

        event = normalize_event({"body": json.dumps({"type": "posts_get_all", "limit": 5})})
        assert event.type == "posts_get_all"
        assert event.get("limit") == 5

        event = normalize_event({"body": {"type": "admin_connect", "email": "a@b.c"}})
        assert event.type == "admin_connect"
        assert event.get("email") == "a@b.c"

    def test_type_next_to_body_is_not_unwrapped(self):
        from src.runtime.parse_event import normalize_event

        event = normalize_event({"type": "post_create", "body": "raw text"})
        assert event.type == "post_create"
        assert event.get("body") == "raw text"

    def test_body_not_an_object(self):
        from src.runtime.parse_event import normalize_event

        assert normalize_event({"body": "[1, 2]"}).is_empty
        assert normalize_event({"body": "nope"}).is_empty

    def test_api_gateway_event(self):
        from src.runtime.parse_event import InputShape, detect_input_shape, normalize_event

        raw = {
            "requestContext": {"http": {"method": "POST"}},
            "headers": {"content-type": "application/json"},
            "body": json.dumps({"type": "posts_get_filtered", "tags": ["news"]}),
            "queryStringParameters": {"page": "3", "type": "ignored"},
        }
        assert detect_input_shape(raw) == InputShape.API_GATEWAY
        event = normalize_event(raw)
        assert event.type == "posts_get_filtered"
        assert event.get("tags") == ["news"]
        # Query parameters fill gaps only
        assert event.get("page") == "3"
        print("✓ API Gateway event parsed correctly")

    def test_api_gateway_base64_body(self):
        from src.runtime.parse_event import normalize_event

        body = base64.b64encode(json.dumps({"type": "post_get", "id": "p1"}).encode()).decode()
        event = normalize_event({"requestContext": {}, "body": body, "isBase64Encoded": True})
        assert event.type == "post_get"
        assert event.get("id") == "p1"

    def test_json_string_holding_proxy_event(self):
        from src.runtime.parse_event import normalize_event

        raw = json.dumps({"requestContext": {}, "headers": {}, "body": json.dumps({"type": "get_media"})})
        assert normalize_event(raw).type == "get_media"

    def test_multipart_form(self):
        from src.runtime.parse_event import InputShape, detect_input_shape, normalize_event

        raw = multipart_event(
            fields={
                "type": "post_create",
                "name": "Hello",
                "tags": json.dumps(["a", "b"]),
                "published": "true",
            },
            files={
                "file0": ("cover.png", "image/png", b"\x89PNG fake image"),
                "file1": ("clip.mp4", "video/mp4", b"fake video"),
            },
        )
        assert detect_input_shape(raw) == InputShape.MULTIPART

        event = normalize_event(raw)
        assert event.type == "post_create"
        assert event.get("name") == "Hello"
        assert event.get("tags") == ["a", "b"]
        assert event.get("published") is True

        attachments = event.attachments
        assert [a.name for a in attachments] == ["cover.png", "clip.mp4"]
        assert attachments[0].content_type == "image/png"
        assert attachments[0].content == b"\x89PNG fake image"
        assert attachments[1].field == "file1"
        print("✓ Multipart form parsed into fields and attachments")

    def test_list_field_parse_failure_keeps_raw_value(self):
        from src.runtime.parse_event import normalize_event

        event = normalize_event({"type": "post_create", "tags": "not json", "links": "[\"x\"]"})
        assert event.get("tags") == "not json"
        assert event.get("links") == ["x"]

    def test_non_string_type_kept_for_error_reporting(self):
        from src.runtime.parse_event import normalize_event

        event = normalize_event({"type": 42})
        assert event.type == "42"
        assert event.event_type is None

    def test_only_known_boolean_fields_are_coerced(self):
        from src.runtime.parse_event import normalize_event

        event = normalize_event({"type": "post_create", "name": "true", "stream": "FALSE", "published": "True"})
        assert event.get("name") == "true"
        assert event.get("stream") is False
        assert event.get("published") is True

    def test_multipart_unknown_charset_falls_back_to_utf8(self):
        from src.runtime.parse_event import normalize_event

        boundary = "----charsetboundary"
        body = (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="type"\r\n\r\n'
            "post_create\r\n"
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="name"\r\n'
            "Content-Type: text/plain; charset=x-bogus\r\n\r\n"
            "Olá\r\n"
            f"--{boundary}--\r\n"
        ).encode("utf-8")
        raw = {
            "requestContext": {},
            "headers": {"content-type": f"multipart/form-data; boundary={boundary}"},
            "body": base64.b64encode(body).decode("ascii"),
            "isBase64Encoded": True,
        }

        event = normalize_event(raw)
        assert event.type == "post_create"
        assert event.get("name") == "Olá"
        print("✓ Unknown multipart charset decoded as utf-8")

    def test_parse_result_value_or(self):
        from src.runtime.parse_event import parse_json

        assert parse_json('{"a": 1}').value_or({}) == {"a": 1}
        assert parse_json("{broken").value_or({}) == {}

    def test_unsupported_input(self):
        from src.runtime.parse_event import normalize_event

        assert normalize_event(12345).is_empty
        assert normalize_event(["type", "post_get"]).is_empty

    def test_describe_request(self):
        from src.runtime.parse_event import describe_request

        info = describe_request({"requestContext": {}, "headers": {"Origin": "https://blog.example"}})
        assert info.is_request
        assert info.origin == "https://blog.example"

        info = describe_request({"type": "post_get"})
        assert not info.is_request
        assert info.origin is None

    def test_canonical_event_to_dict(self):
        event = CanonicalEvent(
            type="post_create",
            attributes={"mediaFiles": [Attachment("a.png", "image/png", b"123", "file0")]},
        )
        assert event.to_dict() == {
            "type": "post_create",
            "mediaFiles": [{"name": "a.png", "contentType": "image/png", "size": 3, "field": "file0"}],
        }


# =============================================================================
# TEST: Dispatcher
# =============================================================================

class TestDispatcher:
    """Tests for Dispatcher and build_registry()."""

    def test_every_tag_reaches_exactly_its_handler(self):
        from src.runtime.dispatch import Dispatcher

        calls = []
        dispatcher = Dispatcher(memory_deps(), handler_classes=recording_classes(calls))

        for tag in EventType:
            outcome = dispatcher.dispatch(tag.value, CanonicalEvent(type=tag.value, attributes={"k": 1}))
            assert outcome["handled"] == tag.value
        assert calls == list(EventType)
        print("✓ Every event type dispatched to its own handler")

    def test_default_registry_covers_all_types(self):
        from src.runtime.dispatch import Dispatcher

        dispatcher = Dispatcher(memory_deps())
        assert set(dispatcher.event_types) == set(EventType)
        for tag in EventType:
            assert dispatcher.handles(tag.value)
            assert dispatcher.handler_for(tag).event_type == tag
        assert not dispatcher.handles("click_count")

    def test_handlers_share_deps(self):
        from src.runtime.dispatch import Dispatcher

        deps = memory_deps()
        dispatcher = Dispatcher(deps)
        assert all(dispatcher.handler_for(tag).deps is deps for tag in EventType)

    def test_missing_type(self):
        from src.runtime.dispatch import Dispatcher
        from src.runtime.errors import MissingType, ValidationError

        calls = []
        dispatcher = Dispatcher(memory_deps(), handler_classes=recording_classes(calls))
        for missing in (None, ""):
            with pytest.raises(MissingType) as exc_info:
                dispatcher.dispatch(missing, CanonicalEvent())
            assert isinstance(exc_info.value, ValidationError)
        assert calls == []

    def test_unknown_type(self):
        from src.runtime.dispatch import Dispatcher
        from src.runtime.errors import UnknownEventType

        calls = []
        dispatcher = Dispatcher(memory_deps(), handler_classes=recording_classes(calls))
        with pytest.raises(UnknownEventType) as exc_info:
            dispatcher.dispatch("click_count", CanonicalEvent(type="click_count"))
        assert exc_info.value.event_type == "click_count"
        assert "click_count" in str(exc_info.value)
        assert calls == []

    def test_handler_failure_is_wrapped_with_cause(self):
        from src.runtime.dispatch import Dispatcher
        from src.runtime.errors import HandlerError

        class Exploding(RecordingHandler):
            event_type = EventType.POST_GET

            def handle(self, event):
                raise ValueError("table unavailable")

        classes = recording_classes([], skip=(EventType.POST_GET,)) + [Exploding]
        dispatcher = Dispatcher(memory_deps(), handler_classes=classes)

        with pytest.raises(HandlerError) as exc_info:
            dispatcher.dispatch("post_get", CanonicalEvent(type="post_get"))
        error = exc_info.value
        assert error.event_type == "post_get"
        assert isinstance(error.cause, ValueError)
        assert error.__cause__ is error.cause
        assert "table unavailable" in str(error)
        print("✓ Handler failures re-raised as HandlerError")

    def test_registry_missing_tag(self):
        from src.runtime.dispatch import build_registry
        from src.runtime.errors import RegistryError

        with pytest.raises(RegistryError) as exc_info:
            build_registry(memory_deps(), recording_classes([], skip=(EventType.GET_MEDIA,)))
        assert "get_media" in str(exc_info.value)

    def test_registry_duplicate_tag(self):
        from src.runtime.dispatch import build_registry
        from src.runtime.errors import RegistryError

        duplicate = type("Duplicate", (RecordingHandler,), {"event_type": EventType.POST_GET, "calls": []})
        with pytest.raises(RegistryError):
            build_registry(memory_deps(), recording_classes([]) + [duplicate])

    def test_registry_unbound_handler(self):
        from src.runtime.dispatch import build_registry
        from src.runtime.errors import RegistryError

        with pytest.raises(RegistryError):
            build_registry(memory_deps(), recording_classes([]) + [RecordingHandler])


# =============================================================================
# TEST: Envelope Builder
# =============================================================================

class TestEnvelope:
    """Tests for build_envelope() and friends."""

    def test_success_envelope(self):
        from src.runtime.envelope import build_envelope

        envelope = build_envelope(outcome={"success": True, "views": Decimal("3")})
        assert envelope.status_code == 200
        assert not envelope.is_error
        assert json.loads(envelope.body) == {"success": True, "views": 3}
        assert envelope.headers == {"Content-Type": "application/json"}
        print("✓ Success envelope built correctly")

    def test_validation_error_is_400(self):
        from src.runtime.envelope import build_envelope
        from src.runtime.errors import MissingType, UnknownEventType

        envelope = build_envelope(error=MissingType())
        assert envelope.status_code == 400
        body = json.loads(envelope.body)
        assert body == {"success": False, "message": "Missing event type", "error": "MissingType"}

        envelope = build_envelope(error=UnknownEventType("nope"))
        assert envelope.status_code == 400
        assert json.loads(envelope.body)["message"] == "Unknown event type: nope"

    def test_other_errors_are_500(self):
        from src.runtime.envelope import build_envelope
        from src.runtime.errors import HandlerError

        envelope = build_envelope(error=HandlerError("post_get", KeyError("id")))
        assert envelope.status_code == 500
        assert json.loads(envelope.body)["error"] == "HandlerError"

        envelope = build_envelope(error=RuntimeError("kaput"))
        assert envelope.status_code == 500
        assert json.loads(envelope.body)["message"] == "Internal error: kaput"

    def test_cors_headers_for_requests(self):
        from src.runtime.envelope import build_envelope
        from src.runtime.parse_event import RequestInfo

        envelope = build_envelope(outcome={}, request=RequestInfo(is_request=True, origin="https://blog.example"))
        assert envelope.headers["Access-Control-Allow-Origin"] == "https://blog.example"
        assert envelope.headers["Access-Control-Allow-Credentials"] == "true"
        assert "OPTIONS" in envelope.headers["Access-Control-Allow-Methods"]

        envelope = build_envelope(outcome={}, request=RequestInfo(is_request=True))
        assert envelope.headers["Access-Control-Allow-Origin"] == "*"
        assert "Access-Control-Allow-Credentials" not in envelope.headers

        envelope = build_envelope(error=RuntimeError("x"), request=RequestInfo(is_request=True))
        assert envelope.headers["Access-Control-Allow-Origin"] == "*"
        print("✓ CORS headers added for request-style invocations")

    def test_to_dict_shape(self):
        from src.runtime.envelope import build_envelope

        data = build_envelope(outcome=[1, 2]).to_dict()
        assert set(data) == {"statusCode", "headers", "body"}
        assert isinstance(data["body"], str)

    def test_generic_success(self):
        from src.runtime.envelope import generic_success

        data = generic_success({"output": "hello"})
        assert data["statusCode"] == 200
        assert json.loads(data["body"]) == {"message": "Success", "code": 0, "output": "hello"}

    def test_jdump_storage_values(self):
        from src.runtime.envelope import jdump

        value = {"price": Decimal("1.5"), "raw": b"\x00\x01", "tags": {"b", "a"}}
        assert json.loads(jdump(value)) == {"price": 1.5, "raw": "AAE=", "tags": ["a", "b"]}


# =============================================================================
# TEST: Worker
# =============================================================================

class TestWorker:
    """Tests for the worker's in-process pipeline."""

    def test_handled_outcome_exits_zero(self):
        from src.app.worker import EXIT_OK, handle_invocation
        from src.runtime.dispatch import Dispatcher

        dispatcher = Dispatcher(memory_deps(), handler_classes=recording_classes([]))
        envelope, code = handle_invocation({"type": "posts_get_all", "page": 1}, dispatcher)
        assert code == EXIT_OK
        assert envelope.status_code == 200
        assert json.loads(envelope.body)["handled"] == "posts_get_all"

    def test_validation_error_exits_zero(self):
        from src.app.worker import EXIT_OK, handle_invocation
        from src.runtime.dispatch import Dispatcher

        dispatcher = Dispatcher(memory_deps(), handler_classes=recording_classes([]))
        envelope, code = handle_invocation({}, dispatcher)
        assert (envelope.status_code, code) == (400, EXIT_OK)

        envelope, code = handle_invocation({"type": "click_count"}, dispatcher)
        assert (envelope.status_code, code) == (400, EXIT_OK)

    def test_normalizer_fault_still_yields_envelope(self):
        from src.app import worker
        from src.runtime.dispatch import Dispatcher

        dispatcher = Dispatcher(memory_deps(), handler_classes=recording_classes([]))
        with patch.object(worker, "normalize_event", side_effect=LookupError("unknown encoding")):
            envelope, code = worker.handle_invocation({"type": "post_get"}, dispatcher)
        assert code == worker.EXIT_FAULT
        assert envelope.status_code == 500
        assert "unknown encoding" in json.loads(envelope.body)["message"]

    def test_handler_error_exits_non_zero(self):
        from src.app.worker import EXIT_FAULT, handle_invocation
        from src.runtime.dispatch import Dispatcher

        dispatcher = Dispatcher(memory_deps(), handler_classes=recording_classes([]))
        with patch.object(dispatcher, "dispatch", side_effect=RuntimeError("db down")):
            envelope, code = handle_invocation({"type": "post_get"}, dispatcher)
        assert code == EXIT_FAULT
        assert envelope.status_code == 500

    def test_read_invocation(self, monkeypatch):
        from src.app.worker import read_invocation

        monkeypatch.setenv("TEST_EVENT", json.dumps({"type": "post_get"}))
        assert read_invocation("TEST_EVENT") == {"type": "post_get"}

        monkeypatch.setenv("TEST_EVENT", "{broken")
        assert read_invocation("TEST_EVENT") == {}

        monkeypatch.delenv("TEST_EVENT")
        assert read_invocation("TEST_EVENT") == {}

    def test_emit_frames_envelope(self):
        import io

        from src.app.worker import emit
        from src.runtime.bridge import extract_framed
        from src.runtime.envelope import build_envelope

        stream = io.StringIO()
        emit(build_envelope(outcome={"ok": True}), stream)
        framed = json.loads(extract_framed(stream.getvalue()))
        assert framed["statusCode"] == 200
        assert json.loads(framed["body"]) == {"ok": True}


# =============================================================================
# TEST: Entry Points
# =============================================================================

class TestEntryPoints:

    def test_direct_handler(self):
        from src.app.direct_handler import direct_handler

        response = direct_handler({"type": "posts_get_all"}, deps=memory_deps())
        assert response["statusCode"] == 200
        assert json.loads(response["body"])["posts"] == []

        response = direct_handler({"type": "unknown"}, deps=memory_deps())
        assert response["statusCode"] == 400

    def test_bridge_handler_delegates_to_worker(self):
        from src.app import bridge_handler

        expected = {"statusCode": 200, "headers": {}, "body": "{}"}
        with patch.object(bridge_handler, "invoke", return_value=expected) as invoke:
            assert bridge_handler.lambda_handler({"type": "post_get"}, MagicMock()) is expected
        invoke.assert_called_once_with({"type": "post_get"})

    def test_summarize_invocation(self):
        from src.app.bridge_handler import summarize_invocation

        summary = summarize_invocation({"headers": {}, "body": "x" * 1000})
        assert summary["body"] == "<1000 bytes>"
        assert summarize_invocation({"body": "short"})["body"] == "short"


# =============================================================================
# TEST: Dependency Injection
# =============================================================================

class TestDeps:
    """Tests for Deps container."""

    def test_injected_stores(self):
        store = DocumentStore.in_memory()
        media = MemoryObjectStore()
        deps = create_deps(store=store, media=media)
        assert deps.store is store
        assert deps.media is media
        print("✓ Stores injectable into Deps")

    def test_memory_backend_from_config(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.setenv("MEDIA_BUCKET_NAME", "test-media")
        deps = create_deps()
        assert deps.in_memory
        assert isinstance(deps.media, MemoryObjectStore)
        assert deps.media.bucket == "test-media"
        # cached for the lifetime of the container
        assert deps.store is deps.store

    def test_dynamodb_backend_uses_table_names(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "dynamodb")
        monkeypatch.setenv("TABLE_PREFIX", "test-")
        for key in ("POSTS_TABLE_NAME", "SUBSCRIPTIONS_TABLE_NAME"):
            monkeypatch.delenv(key, raising=False)
        deps = create_deps()
        resource = MagicMock()
        deps.dynamodb = resource

        assert deps.store.posts.key == "id"
        names = [call.args[0] for call in resource.Table.call_args_list]
        assert "test-posts" in names
        assert "test-subscriptions" in names

    def test_load_config_defaults(self, monkeypatch):
        from src.runtime.deps import DEFAULT_EVENT_VAR, load_config

        for key in ("MEDIA_LIST_LIMIT", "WORKER_EVENT_VAR", "WORKER_TIMEOUT_SECONDS", "TABLE_PREFIX"):
            monkeypatch.delenv(key, raising=False)
        config = load_config()
        assert config["MEDIA_LIST_LIMIT"] == 20
        assert config["WORKER_EVENT_VAR"] == DEFAULT_EVENT_VAR
        assert config["WORKER_TIMEOUT_SECONDS"] is None

        monkeypatch.setenv("MEDIA_LIST_LIMIT", "many")
        assert load_config()["MEDIA_LIST_LIMIT"] == 20

    def test_worker_command(self, monkeypatch):
        from src.runtime.deps import load_config, worker_command

        monkeypatch.delenv("WORKER_COMMAND", raising=False)
        assert worker_command(load_config()) == [sys.executable, "-m", "src.app.worker"]

        monkeypatch.setenv("WORKER_COMMAND", "python3 -m src.app.worker --quiet")
        assert worker_command(load_config()) == ["python3", "-m", "src.app.worker", "--quiet"]


# =============================================================================
# MAIN TEST RUNNER
# =============================================================================

if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
