from __future__ import annotations

import pytest

from handshake_relay.app.engine import HandshakeEngine
from handshake_relay.app.errors import (
    CallbackRejected,
    ExtractionFailed,
    IncompleteState,
    NotFound,
    UpstreamError,
    UpstreamTimeout,
)
from handshake_relay.storage.memory import InMemorySecretStore


def test_initiate_persists_message_webhook_and_part1(engine, store, verifier) -> None:
    result = engine.initiate("ping")

    record = store.read_one(result.request_id)
    assert record.message == "ping"
    assert record.webhook_url == f"https://relay.example/v1/receive/secret/{result.request_id}"
    assert record.part1 == {"part1": "AB1"}
    assert record.stage == "part1-received"
    assert verifier.initiate_calls == [("ping", record.webhook_url)]


def test_initiate_uses_default_message_only_when_empty(engine, verifier) -> None:
    engine.initiate(None)
    engine.initiate("")
    engine.initiate("   ")
    engine.initiate(42)

    assert [message for message, _ in verifier.initiate_calls] == [
        "Hello from tests",
        "Hello from tests",
        "   ",
        42,
    ]


def test_initiate_mints_unique_request_ids(engine) -> None:
    ids = {engine.initiate("x").request_id for _ in range(5)}
    assert len(ids) == 5


def test_callback_url_falls_back_to_request_base_url(store, verifier) -> None:
    engine = HandshakeEngine(store=store, client=verifier, default_message="m")

    result = engine.initiate("x", base_url="http://testserver/")
    assert result.webhook_url == f"http://testserver/v1/receive/secret/{result.request_id}"


def test_initiate_failure_keeps_partial_record(engine, store, verifier) -> None:
    verifier.initiate_error = UpstreamError("boom", status=500, body="down")

    with pytest.raises(UpstreamError) as excinfo:
        engine.initiate("ping")

    request_id = excinfo.value.request_id
    assert request_id is not None
    record = store.read_one(request_id)
    assert record.message == "ping"
    assert record.webhook_url.endswith(request_id)
    assert record.part1 is None


def test_receive_before_initiate_creates_record(engine, store) -> None:
    record = engine.receive("early-bird", {"code": "9Z"})

    assert record.part2 == {"code": "9Z"}
    assert store.read_one("early-bird").stage == "part2-received"


def test_receive_strict_mode_rejects_unknown_id(store, verifier) -> None:
    engine = HandshakeEngine(
        store=store,
        client=verifier,
        default_message="m",
        receive_requires_known_id=True,
    )

    with pytest.raises(NotFound):
        engine.receive("unknown", {"code": "9Z"})
    assert store.read_one("unknown") is None


def test_receive_with_callback_token(store, verifier) -> None:
    engine = HandshakeEngine(
        store=store,
        client=verifier,
        default_message="m",
        webhook_base_url="https://relay.example",
        callback_token="s3cret",
    )
    result = engine.initiate("x")
    assert result.webhook_url.endswith("?token=s3cret")

    with pytest.raises(CallbackRejected):
        engine.receive(result.request_id, {"code": "9Z"})
    with pytest.raises(CallbackRejected):
        engine.receive(result.request_id, {"code": "9Z"}, token="wrong")

    record = engine.receive(result.request_id, {"code": "9Z"}, token="s3cret")
    assert record.part2 == {"code": "9Z"}


def test_check_unknown_id_is_not_found(engine) -> None:
    with pytest.raises(NotFound):
        engine.check("missing")


def test_check_before_both_parts_is_incomplete(engine, verifier) -> None:
    result = engine.initiate("x")

    with pytest.raises(IncompleteState) as excinfo:
        engine.check(result.request_id)
    assert excinfo.value.missing == ["part2"]
    assert verifier.verify_calls == []


def test_check_combines_part1_then_part2(engine, store, verifier) -> None:
    verifier.initiate_response = '{"code": "AB1"}'
    result = engine.initiate("x")
    engine.receive(result.request_id, {"secret": "9Z"})

    check = engine.check(result.request_id)

    assert check.combined_code == "AB19Z"
    assert verifier.verify_calls == ["AB19Z"]
    record = store.read_one(result.request_id)
    assert record.check_response == {"status": "ok"}
    assert record.checked_at == check.checked_at
    assert record.stage == "checked"


def test_check_works_when_part2_arrives_first(engine, verifier) -> None:
    engine.store.update("rid", "part2", "9Z")
    engine.store.update("rid", "part1", {"data": "AB1"})

    assert engine.check("rid").combined_code == "AB19Z"


def test_check_extraction_failure(engine, verifier) -> None:
    engine.store.update_many("rid", {"part1": {"unrelated": 1}, "part2": "9Z"})

    with pytest.raises(ExtractionFailed) as excinfo:
        engine.check("rid")
    assert excinfo.value.empty_parts == ["part1"]
    assert verifier.verify_calls == []


def test_check_empty_array_code_is_extraction_failure(engine, verifier) -> None:
    engine.store.update_many("rid", {"part1": "AB1", "part2": {"code": []}})

    with pytest.raises(ExtractionFailed) as excinfo:
        engine.check("rid")
    assert excinfo.value.empty_parts == ["part2"]
    assert verifier.verify_calls == []


def test_repeated_check_reruns_upstream_call(engine, store, verifier) -> None:
    engine.store.update_many("rid", {"part1": "AB1", "part2": "9Z"})

    engine.check("rid")
    verifier.verify_response = {"status": "second"}
    engine.check("rid")

    assert verifier.verify_calls == ["AB19Z", "AB19Z"]
    assert store.read_one("rid").check_response == {"status": "second"}


def test_check_upstream_timeout_does_not_persist_result(engine, store, verifier) -> None:
    engine.store.update_many("rid", {"part1": "AB1", "part2": "9Z"})
    verifier.verify_error = UpstreamTimeout("slow")

    with pytest.raises(UpstreamTimeout) as excinfo:
        engine.check("rid")
    assert excinfo.value.request_id == "rid"
    assert store.read_one("rid").checked_at is None


def test_get_and_list_records(engine) -> None:
    engine.store.update("a", "part1", "x")

    assert engine.get("a").part1 == "x"
    assert list(engine.list_records()) == ["a"]
    with pytest.raises(NotFound):
        engine.get("b")


def test_engine_accepts_any_store_backend(verifier) -> None:
    engine = HandshakeEngine(store=InMemorySecretStore(), client=verifier, default_message="m")
    assert engine.list_records() == {}
