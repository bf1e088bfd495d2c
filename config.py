"""Configuration for the sensechat-proxy translation service."""
import os
from urllib.parse import urlparse
from pydantic_settings import BaseSettings
from typing import Dict

class Settings(BaseSettings):
    # Application settings
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8089"))

    # Upstream chat service
    UPSTREAM_URL: str = os.getenv("UPSTREAM_URL", "https://api.sensenova.cn")
    UPSTREAM_CHAT_PATH: str = os.getenv("UPSTREAM_CHAT_PATH", "/v1/llm/chat-completions")
    UPSTREAM_CONNECT_TIMEOUT: float = float(os.getenv("UPSTREAM_CONNECT_TIMEOUT", "10"))

    # Inbound routing
    CHAT_COMPLETIONS_PATH: str = os.getenv("CHAT_COMPLETIONS_PATH", "/v1/chat/completions")
    HEALTH_PATH: str = os.getenv("HEALTH_PATH", "/_proxy/health")

    # Passthrough target; empty means the host the request was addressed to
    PASSTHROUGH_URL: str = os.getenv("PASSTHROUGH_URL", "")

    # Stream re-framing
    SYSTEM_FINGERPRINT: str = os.getenv("SYSTEM_FINGERPRINT", "cf-openai-sensechat-proxy-123")

    class Config:
        env_file = ".env"
        case_sensitive = True

    def validate_settings(self):
        """Validate critical settings."""
        upstream = urlparse(self.UPSTREAM_URL)
        if upstream.scheme not in ("http", "https") or not upstream.netloc:
            raise ValueError(f"UPSTREAM_URL must be an absolute http(s) URL, got {self.UPSTREAM_URL!r}")

        if self.PASSTHROUGH_URL:
            passthrough = urlparse(self.PASSTHROUGH_URL)
            if passthrough.scheme not in ("http", "https") or not passthrough.netloc:
                raise ValueError(f"PASSTHROUGH_URL must be an absolute http(s) URL, got {self.PASSTHROUGH_URL!r}")

        if not 0 < self.PORT < 65536:
            raise ValueError("PORT must be between 1 and 65535")

        if not self.CHAT_COMPLETIONS_PATH.startswith("/"):
            raise ValueError("CHAT_COMPLETIONS_PATH must start with '/'")

        if self.HEALTH_PATH == self.CHAT_COMPLETIONS_PATH:
            raise ValueError("HEALTH_PATH must differ from CHAT_COMPLETIONS_PATH")

settings = Settings()

# Validate settings on import
try:
    settings.validate_settings()
except ValueError as e:
    if not settings.DEBUG:
        raise e
    else:
        print(f"⚠️  Configuration warning: {e}")

def get_environment_info() -> Dict[str, object]:
    """Get environment information for debugging."""
    return {
        "debug": settings.DEBUG,
        "upstream_url": settings.UPSTREAM_URL,
        "upstream_chat_path": settings.UPSTREAM_CHAT_PATH,
        "chat_completions_path": settings.CHAT_COMPLETIONS_PATH,
        "passthrough_url": settings.PASSTHROUGH_URL or None,
        "system_fingerprint": settings.SYSTEM_FINGERPRINT,
    }
