"""Signed randomness for verifiable draws (random.org JSON-RPC v4)."""

from __future__ import annotations

import base64
import json
import logging
import urllib.parse
from dataclasses import dataclass
from typing import Any, Final, Protocol

import requests

from .errors import ConfigurationError, RandomnessProviderError

log: Final = logging.getLogger("giveaway-randomness")

RANDOM_ORG_INVOKE_URL = "https://api.random.org/json-rpc/4/invoke"
RANDOM_ORG_VERIFY_URL = "https://api.random.org/json-rpc/4/verify"
RANDOM_ORG_FORM_URL = "https://api.random.org/signatures/form"


@dataclass(slots=True, frozen=True)
class SignedRandom:
    """A provider-signed random integer and the exact payload that was signed."""

    random: dict[str, Any]
    signature: str

    @property
    def value(self) -> int:
        data = self.random.get("data") or []
        if not data:
            raise RandomnessProviderError("Signed random payload carries no data")
        return int(data[0])


class RandomnessProvider(Protocol):
    source: str

    def generate(self, max_value: int, user_data: str) -> SignedRandom:
        """Return one integer in ``[0, max_value)``."""

    def verify(self, random: dict[str, Any], signature: str) -> bool: ...

    def verification_url(self, random: dict[str, Any], signature: str) -> str: ...


def build_verification_url(random: dict[str, Any], signature: str) -> str:
    encoded = base64.b64encode(json.dumps(random).encode("utf-8")).decode("ascii")
    return (
        f"{RANDOM_ORG_FORM_URL}?format=json"
        f"&random={encoded}"
        f"&signature={urllib.parse.quote(signature, safe='')}"
    )


class RandomOrgProvider:
    source = "random.org/signed"

    def __init__(
        self,
        api_key: str | None,
        *,
        timeout: float = 10,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()

    def generate(self, max_value: int, user_data: str) -> SignedRandom:
        if not self._api_key:
            raise ConfigurationError("RANDOM_ORG_API_KEY is not configured")
        if max_value < 1:
            raise RandomnessProviderError("max_value must be positive")

        body = {
            "jsonrpc": "2.0",
            "method": "generateSignedIntegers",
            "params": {
                "apiKey": self._api_key,
                "n": 1,
                "min": 0,
                "max": max_value - 1,
                "replacement": True,
                "userData": user_data,
            },
            "id": 1,
        }
        try:
            resp = self._session.post(
                RANDOM_ORG_INVOKE_URL, json=body, timeout=self._timeout
            )
        except requests.RequestException as exc:
            log.error("random.org request failed: %s", exc)
            raise RandomnessProviderError(f"random.org request failed: {exc}") from exc

        if resp.status_code != 200:
            raise RandomnessProviderError(
                f"random.org API error: HTTP {resp.status_code}"
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise RandomnessProviderError("random.org returned invalid JSON") from exc

        if data.get("error"):
            message = data["error"].get("message") or "Unknown error"
            raise RandomnessProviderError(f"random.org API error: {message}")

        result = data.get("result") or {}
        random = result.get("random")
        signature = result.get("signature")
        if not isinstance(random, dict) or not signature:
            raise RandomnessProviderError("random.org response missing signed payload")
        signed = SignedRandom(random=random, signature=str(signature))
        log.info("random.org drew %s of %s for '%s'", signed.value, max_value, user_data)
        return signed

    def verify(self, random: dict[str, Any], signature: str) -> bool:
        body = {
            "jsonrpc": "2.0",
            "method": "verify",
            "params": {"random": random, "signature": signature},
            "id": 1,
        }
        try:
            resp = self._session.post(
                RANDOM_ORG_VERIFY_URL, json=body, timeout=self._timeout
            )
            if resp.status_code != 200:
                return False
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("random.org signature verification failed: %s", exc)
            return False
        if not isinstance(data, dict) or data.get("error"):
            return False
        result = data.get("result")
        return isinstance(result, dict) and result.get("authentic") is True

    def verification_url(self, random: dict[str, Any], signature: str) -> str:
        return build_verification_url(random, signature)


__all__ = [
    "SignedRandom",
    "RandomnessProvider",
    "RandomOrgProvider",
    "build_verification_url",
]
