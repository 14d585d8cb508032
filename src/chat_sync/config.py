from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    BROKER_URL: str = "redis://localhost:6379/0"
    BROKER_HEALTH_CHECK_SECONDS: int = 4

    OUTBOUND_ADDRESS: str = "chat.private-message"
    INBOUND_ADDRESS_TEMPLATE: str = "chat.user.{identity}.private"

    RECONNECT_DELAY_SECONDS: float = 5.0

    REST_BASE_URL: str = "http://localhost:8080"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    CREDENTIAL_TTL_SECONDS: int = 60

    def inbound_address(self, identity: str) -> str:
        """Canonical private address for a signed-in identity."""
        return self.INBOUND_ADDRESS_TEMPLATE.format(identity=identity)

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
