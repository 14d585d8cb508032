from __future__ import annotations

import uuid
from datetime import timedelta

import jwt

from chat_sync.application.exceptions import AuthLossError
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.entities.participant import Identity


class HS256CredentialIssuer:
    """Mint short-lived HS256 JWTs for a signed-in identity.

    Stands in for the identity provider in development and tests. Every
    call yields a distinct token (fresh `jti`, `iat`, `exp`).
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl_seconds: int = 60,
        clock: Clock | None = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or SystemClock()
        self._identity: Identity | None = None

    def sign_in(self, identity: Identity) -> None:
        self._identity = identity

    def sign_out(self) -> None:
        self._identity = None

    async def get_credential(self) -> str:
        if self._identity is None or not self._secret:
            raise AuthLossError("no signed-in identity to issue a credential for")
        now = self._clock.now()
        return jwt.encode(
            {
                "sub": self._identity.id,
                "username": self._identity.display_name,
                "iat": now,
                "exp": now + self._ttl,
                "jti": uuid.uuid4().hex,
            },
            self._secret,
            algorithm=self._algorithm,
        )


def decode_identity(token: str, secret: str, algorithm: str = "HS256") -> Identity:
    """Recover the identity a credential was issued for."""
    try:
        payload = jwt.decode(
            token, secret, algorithms=[algorithm], options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise AuthLossError(f"credential rejected: {exc}") from exc
    sub = payload["sub"]
    return Identity(id=sub, display_name=payload.get("username") or sub)
