"""
Install tokens: stateless, HMAC-signed, time-bounded client credentials.

Token layout:

    base64url(JSON payload) "." base64url(HMAC-SHA256(secret, payload_b64))

Payload: {"ver": 1, "iat": <unix s>, "exp": <unix s>, "jti": <hex nonce>}

Nothing is stored server-side; verification recomputes the signature and
checks the time window. Callers must never log the token or the secret, only
the rejection reason.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

TOKEN_VERSION = 1
NONCE_BYTES = 16

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)\s*$", re.IGNORECASE)


class AuthReason(str, Enum):
    MISSING = "missing"
    FORMAT = "format"
    SIGNATURE = "sig"
    PAYLOAD = "payload"
    EXPIRED = "expired"
    ISSUED_AT = "iat"
    NONCE = "jti"


@dataclass(frozen=True)
class TokenClaims:
    version: int
    issued_at: int
    expires_at: int
    nonce: str


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: int  # unix seconds

    @property
    def expires_at_ms(self) -> int:
        return self.expires_at * 1000


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    reason: Optional[AuthReason] = None
    claims: Optional[TokenClaims] = None


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    match = _BEARER_RE.match(authorization.strip())
    return match.group(1) if match else None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class TokenAuthenticator:
    """Issues and verifies install tokens."""

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = 90 * 24 * 3600,
        clock_skew_seconds: int = 60,
        min_nonce_length: int = 8,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._key = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self.clock_skew_seconds = clock_skew_seconds
        self.min_nonce_length = min_nonce_length
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _sign(self, payload_b64: str) -> str:
        digest = hmac.new(self._key, payload_b64.encode("ascii"), hashlib.sha256).digest()
        return b64url_encode(digest)

    def issue(self) -> IssuedToken:
        now = self._now()
        payload = {
            "ver": TOKEN_VERSION,
            "iat": now,
            "exp": now + self.ttl_seconds,
            "jti": secrets.token_hex(NONCE_BYTES),
        }
        payload_b64 = b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        return IssuedToken(token=f"{payload_b64}.{self._sign(payload_b64)}", expires_at=payload["exp"])

    def verify(self, token: Optional[str]) -> VerificationResult:
        """
        Verify a token. Fails closed: any malformed input is a rejection,
        never an exception.

        Checks run in order: missing, format, sig, payload, expired, iat, jti.
        """
        if not token or not isinstance(token, str):
            return VerificationResult(ok=False, reason=AuthReason.MISSING)

        parts = token.split(".")
        if len(parts) != 2:
            return VerificationResult(ok=False, reason=AuthReason.FORMAT)
        payload_b64, sig_b64 = parts

        try:
            expected = self._sign(payload_b64)
        except UnicodeEncodeError:
            return VerificationResult(ok=False, reason=AuthReason.SIGNATURE)
        if not hmac.compare_digest(expected.encode("ascii"), sig_b64.encode("utf-8")):
            return VerificationResult(ok=False, reason=AuthReason.SIGNATURE)

        try:
            payload = json.loads(b64url_decode(payload_b64).decode("utf-8"))
        except (binascii.Error, ValueError):
            return VerificationResult(ok=False, reason=AuthReason.PAYLOAD)
        if not isinstance(payload, dict):
            return VerificationResult(ok=False, reason=AuthReason.PAYLOAD)

        now = self._now()
        exp = payload.get("exp")
        iat = payload.get("iat")
        jti = payload.get("jti")
        if not _is_int(exp) or exp < now:
            return VerificationResult(ok=False, reason=AuthReason.EXPIRED)
        if not _is_int(iat) or iat > now + self.clock_skew_seconds:
            return VerificationResult(ok=False, reason=AuthReason.ISSUED_AT)
        if not isinstance(jti, str) or len(jti) < self.min_nonce_length:
            return VerificationResult(ok=False, reason=AuthReason.NONCE)

        version = payload.get("ver")
        claims = TokenClaims(
            version=version if _is_int(version) else TOKEN_VERSION,
            issued_at=iat,
            expires_at=exp,
            nonce=jti,
        )
        return VerificationResult(ok=True, claims=claims)
