from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from urllib.parse import quote

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    token: Optional[str] = Field(default=None, alias="TOKEN")
    domain: str = Field(default="visma.chat", alias="DOMAIN")
    skill_id: Optional[str] = Field(default=None, alias="SKILL_ID")
    partner_id: Optional[str] = Field(default=None, alias="PARTNER_ID")
    # Point both channels at a locally running service instead of the domain.
    local: bool = Field(default=False, alias="LOCAL")
    api_subdomain: str = Field(default="api", alias="API_SUBDOMAIN")
    ws_subdomain: str = Field(default="ws", alias="WS_SUBDOMAIN")
    http_timeout_sec: float = Field(default=90, alias="HTTP_TIMEOUT_SEC")
    handshake_timeout_sec: float = Field(default=30, alias="HANDSHAKE_TIMEOUT_SEC")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    max_input_chars: int = Field(default=8000, alias="MAX_INPUT_CHARS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


@dataclass(frozen=True)
class ServiceEndpoints:
    """Base addresses of the HTTP API and the streaming socket."""

    api_base: str
    stream_base: str

    @classmethod
    def for_domain(
        cls, domain: str, api_subdomain: str = "api", ws_subdomain: str = "ws"
    ) -> ServiceEndpoints:
        domain = domain.strip().strip("/")
        return cls(
            api_base=f"https://{api_subdomain}.{domain}",
            stream_base=f"wss://{ws_subdomain}.{domain}",
        )

    @classmethod
    def local(cls, api_port: int = 8080, ws_port: int = 8081) -> ServiceEndpoints:
        return cls(
            api_base=f"http://localhost:{api_port}",
            stream_base=f"ws://localhost:{ws_port}",
        )

    def stream_url(self, token: str) -> str:
        """Build the socket address carrying the auth token."""

        return f"{self.stream_base.rstrip('/')}/?stream=1&token={quote(token, safe='')}"

    def chat_url(self, skill_id: Optional[str]) -> str:
        """Build the chat address, skill-scoped when a skill is selected."""

        base = self.api_base.rstrip("/")
        if skill_id:
            return f"{base}/v1/skills/{quote(skill_id, safe='')}/chat"
        return f"{base}/v1/ai/chat"


def resolve_endpoints(settings: Settings) -> ServiceEndpoints:
    """Select the endpoints described by the given settings."""

    if settings.local:
        return ServiceEndpoints.local()
    return ServiceEndpoints.for_domain(
        settings.domain,
        api_subdomain=settings.api_subdomain,
        ws_subdomain=settings.ws_subdomain,
    )
