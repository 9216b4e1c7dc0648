"""Correlation engine for the two-phase verification handshake.

Phases:
- initiate: mint a request id, tell the external service where to call back,
  and keep its synchronous answer as part1.
- receive: store the asynchronous webhook body as part2. It may arrive before
  initiate has finished writing part1, so unknown ids are created lazily.
- check: once both halves exist, rebuild the code (part1 first) and ask the
  external service to verify it.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from datetime import UTC, datetime
from typing import Any
from urllib import parse

from handshake_relay.storage.base import SecretStore

from .errors import (
    CallbackRejected,
    ExtractionFailed,
    IncompleteState,
    NotFound,
    UpstreamError,
)
from .extract import extract_code, is_truthy
from .models import CheckResult, InitiateResult, SecretRecord
from .verifier_client import VerifierClient

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/v1/receive/secret/{request_id}"


class HandshakeEngine:
    def __init__(
        self,
        *,
        store: SecretStore,
        client: VerifierClient,
        default_message: str,
        webhook_base_url: str = "",
        callback_token: str = "",
        receive_requires_known_id: bool = False,
    ) -> None:
        self.store = store
        self.client = client
        self.default_message = default_message
        self.webhook_base_url = webhook_base_url
        self.callback_token = callback_token
        self.receive_requires_known_id = receive_requires_known_id

    def callback_url(self, request_id: str, *, base_url: str | None = None) -> str:
        base = (self.webhook_base_url or base_url or "").rstrip("/")
        url = f"{base}{CALLBACK_PATH.format(request_id=parse.quote(request_id, safe=''))}"
        if self.callback_token:
            url = f"{url}?{parse.urlencode({'token': self.callback_token})}"
        return url

    def initiate(
        self,
        message: Any = None,
        *,
        base_url: str | None = None,
    ) -> InitiateResult:
        request_id = str(uuid.uuid4())
        text = message if is_truthy(message) else self.default_message
        webhook_url = self.callback_url(request_id, base_url=base_url)

        # Persist before calling out so a failed call still leaves an inspectable record.
        self.store.update_many(request_id, {"message": text, "webhook_url": webhook_url})
        logger.info("handshake event=initiate_start request_id=%s", request_id)

        try:
            part1 = self.client.initiate(text, webhook_url)
        except UpstreamError as exc:
            exc.request_id = request_id
            logger.warning(
                "handshake event=initiate_failed request_id=%s error=%s status=%s",
                request_id,
                exc.error,
                exc.status,
            )
            raise

        record = self.store.update(request_id, "part1", part1)
        logger.info(
            "handshake event=part1_stored request_id=%s stage=%s", request_id, record.stage
        )
        return InitiateResult(request_id=request_id, webhook_url=webhook_url, part1=part1)

    def receive(self, request_id: str, payload: Any, *, token: str | None = None) -> SecretRecord:
        if self.callback_token and not hmac.compare_digest(
            (token or "").encode("utf-8"), self.callback_token.encode("utf-8")
        ):
            logger.warning("handshake event=callback_rejected request_id=%s", request_id)
            raise CallbackRejected("Callback token missing or invalid", request_id=request_id)

        if self.receive_requires_known_id and self.store.read_one(request_id) is None:
            raise NotFound(request_id)

        record = self.store.update(request_id, "part2", payload)
        logger.info(
            "handshake event=part2_stored request_id=%s stage=%s", request_id, record.stage
        )
        return record

    def check(self, request_id: str) -> CheckResult:
        record = self.get(request_id)

        missing = [name for name in ("part1", "part2") if getattr(record, name) is None]
        if missing:
            raise IncompleteState(request_id, missing=missing)

        code1 = extract_code(record.part1)
        code2 = extract_code(record.part2)
        empty_parts = [name for name, code in (("part1", code1), ("part2", code2)) if not code]
        if empty_parts:
            logger.warning(
                "handshake event=extraction_failed request_id=%s empty_parts=%s",
                request_id,
                empty_parts,
            )
            raise ExtractionFailed(request_id, empty_parts=empty_parts)

        combined_code = f"{code1}{code2}"
        try:
            response = self.client.verify(combined_code)
        except UpstreamError as exc:
            exc.request_id = request_id
            logger.warning(
                "handshake event=check_failed request_id=%s error=%s status=%s",
                request_id,
                exc.error,
                exc.status,
            )
            raise

        checked_at = datetime.now(UTC)
        self.store.update_many(
            request_id,
            {"check_response": response, "checked_at": checked_at},
        )
        logger.info("handshake event=checked request_id=%s", request_id)
        return CheckResult(
            request_id=request_id,
            combined_code=combined_code,
            response=response,
            checked_at=checked_at,
        )

    def get(self, request_id: str) -> SecretRecord:
        record = self.store.read_one(request_id)
        if record is None:
            raise NotFound(request_id)
        return record

    def list_records(self) -> dict[str, SecretRecord]:
        return self.store.read_all()
