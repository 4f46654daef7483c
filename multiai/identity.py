"""Caller identity: HMAC-signed credentials and identity sources."""

import base64
import hashlib
import hmac
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from datetime import timedelta

from multiai.errors import ServerMisconfiguration
from multiai.models import ANONYMOUS, Caller

logger = logging.getLogger(__name__)

_ROLES = {"admin", "user"}


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class CredentialSigner:
    """Issue and verify ``payload.signature`` tokens signed with HMAC-SHA256."""

    def __init__(self, secret: str, ttl: timedelta = timedelta(hours=1)) -> None:
        if not secret:
            raise ServerMisconfiguration("credential signing secret is empty")
        self._secret = secret.encode()
        self._ttl = ttl

    @classmethod
    def from_env(cls, secret_env: str, ttl: timedelta = timedelta(hours=1)) -> "CredentialSigner":
        secret = os.environ.get(secret_env, "").strip()
        if not secret:
            raise ServerMisconfiguration(f"missing credential secret: {secret_env}")
        return cls(secret, ttl)

    def issue(self, subject: str, role: str = "user", email: str | None = None) -> str:
        if role not in _ROLES:
            raise ValueError(f"Unknown role: {role}")
        now = int(time.time())
        payload = {
            "sub": subject,
            "role": role,
            "email": email,
            "iat": now,
            "exp": now + int(self._ttl.total_seconds()),
        }
        payload_b64 = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
        return f"{payload_b64}.{self._sign(payload_b64)}"

    def verify(self, token: str) -> Caller | None:
        """Return the verified caller, or None if the token is malformed, forged or expired."""
        parts = token.split(".")
        if len(parts) != 2:
            return None
        payload_b64, signature = parts
        if not hmac.compare_digest(signature, self._sign(payload_b64)):
            return None

        try:
            payload = json.loads(_b64decode(payload_b64))
        except (ValueError, UnicodeDecodeError) as exc:
            logger.debug("Token payload decode error: %s", exc)
            return None

        if not isinstance(payload, dict) or payload.get("exp", 0) < time.time():
            return None
        role = payload.get("role")
        if role not in _ROLES or not payload.get("sub"):
            return None

        return Caller(authenticated=True, role=role, subject=payload["sub"], email=payload.get("email"))

    def _sign(self, data: str) -> str:
        digest = hmac.new(self._secret, data.encode(), hashlib.sha256).digest()
        return _b64encode(digest)


class IdentitySource(ABC):
    """Where the core learns who is calling."""

    @abstractmethod
    def current_caller(self) -> Caller:
        ...


class StaticIdentity(IdentitySource):
    """A fixed caller, for trusted in-process use and tests."""

    def __init__(self, caller: Caller = ANONYMOUS) -> None:
        self._caller = caller

    def current_caller(self) -> Caller:
        return self._caller


class SignedCredentialIdentity(IdentitySource):
    """Re-verify a bearer credential on every call; never trust a client-asserted role."""

    def __init__(self, signer: CredentialSigner, token: str | None) -> None:
        self._signer = signer
        self._token = token

    def current_caller(self) -> Caller:
        if not self._token:
            return ANONYMOUS
        caller = self._signer.verify(self._token)
        if caller is None:
            logger.warning("Credential rejected (invalid or expired), continuing as anonymous")
            return ANONYMOUS
        return caller
