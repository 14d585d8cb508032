from __future__ import annotations

from typing import Protocol


class CredentialProvider(Protocol):
    async def get_credential(self) -> str:
        """Return a fresh bearer credential.

        Called once per connection attempt and once per REST call; callers
        never cache the result. Raise AuthLossError if no credential can be
        issued (e.g. the user signed out).
        """
        ...
