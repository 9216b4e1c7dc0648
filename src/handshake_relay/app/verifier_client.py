from __future__ import annotations

import http.client
import json
import logging
import socket
from typing import Any, Protocol
from urllib import error, parse, request

from .errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)


class VerifierClient(Protocol):
    """Interface of the third-party verification service."""

    def initiate(self, message: Any, callback_url: str) -> Any: ...

    def verify(self, combined_code: str) -> Any: ...


class VerificationClient:
    """Pass-through HTTP client for the external verification endpoint.

    Response bodies are returned as decoded JSON when possible, otherwise as
    raw text; nothing else is interpreted here.
    """

    def __init__(self, *, base_url: str, timeout_s: float = 10.0) -> None:
        self.base_url = base_url
        self.timeout_s = timeout_s

    def initiate(self, message: Any, callback_url: str) -> Any:
        return self._request_json(
            method="POST",
            url=self.base_url,
            payload={"msg": message, "url": callback_url},
        )

    def verify(self, combined_code: str) -> Any:
        separator = "&" if parse.urlparse(self.base_url).query else "?"
        url = f"{self.base_url}{separator}{parse.urlencode({'code': combined_code})}"
        return self._request_json(method="GET", url=url)

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        raw_payload: bytes | None = None
        headers = {"Accept": "application/json, text/plain, */*"}
        if payload is not None:
            raw_payload = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = request.Request(url=url, method=method, data=raw_payload, headers=headers)
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8", errors="replace")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            logger.warning(
                "verifier request failed method=%s url=%s status=%s", method, url, exc.code
            )
            raise UpstreamError(
                f"Verification service returned HTTP {exc.code}",
                status=exc.code,
                body=_decode_body(raw_error),
            ) from exc
        except (TimeoutError, socket.timeout) as exc:
            logger.warning("verifier request timed out method=%s url=%s", method, url)
            raise UpstreamTimeout(
                f"Verification service did not answer within {self.timeout_s}s"
            ) from exc
        except error.URLError as exc:
            if isinstance(exc.reason, (TimeoutError, socket.timeout)):
                logger.warning("verifier request timed out method=%s url=%s", method, url)
                raise UpstreamTimeout(
                    f"Verification service did not answer within {self.timeout_s}s"
                ) from exc
            logger.warning(
                "verifier request failed method=%s url=%s reason=%s", method, url, exc.reason
            )
            raise UpstreamError(f"Verification service unreachable: {exc.reason}") from exc
        except (http.client.HTTPException, OSError) as exc:
            # Failures after connect (dropped connection, truncated body) are not URLErrors.
            logger.warning(
                "verifier request failed method=%s url=%s reason=%r", method, url, exc
            )
            raise UpstreamError(f"Verification service connection failed: {exc!r}") from exc
        return _decode_body(body)


def _decode_body(body: str) -> Any:
    if not body:
        return ""
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body
