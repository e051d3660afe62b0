from pathlib import Path
from zoneinfo import ZoneInfo
import logging

from croniter import croniter
from pydantic import PrivateAttr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from epg_server.utils.pattern_matcher import AllowEntry, compile_allow_list


logger = logging.getLogger(__name__)

DEFAULT_PROJECT_URL = "https://github.com/taksssss/EPG-Server"


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_url: str = "sqlite+aiosqlite:///./data/data.db"
    data_dir: str = "./data"
    server_url: str = "http://localhost:8000"
    timezone: str = "Asia/Shanghai"
    log_level: str = "INFO"

    # 0 disables the check, 1 lets non-live requests through by default,
    # 2 lets live (m3u/txt) requests through by default
    token_range: int = 1
    token: str = ""
    user_agent_range: int = 0
    user_agent: str = ""
    ip_list_mode: int = 0  # 1 white-list, 2 black-list

    debug_mode: bool = False
    ret_default: bool = True
    cht_to_chs: bool = True
    gen_xml: bool = True

    cache_backend: str = "none"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_sec: int = 24 * 3600
    cache_sweep_cron: str = "*/30 * * * *"
    # Shared secret for POST /cache/clear; empty disables the endpoint
    admin_token: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    _allowed_tokens: list[AllowEntry] = PrivateAttr(default_factory=list)
    _allowed_user_agents: list[AllowEntry] = PrivateAttr(default_factory=list)

    @field_validator("data_dir")
    @classmethod
    def validate_data_dir(cls, value: str) -> str:
        """Validate data directory is accessible."""
        path = Path(value)
        try:
            path.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access data directory '{value}': {exc}") from exc

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, value: str) -> str:
        """Validate public base URL is HTTP/HTTPS and strip trailing slash."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"server_url must be HTTP/HTTPS: {value}")
        return value.rstrip("/")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Validate timezone string"""
        try:
            ZoneInfo(value)
            return value
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Invalid timezone: {value}") from exc

    @field_validator("token_range", "user_agent_range", "ip_list_mode")
    @classmethod
    def validate_modes(cls, value: int, info) -> int:
        """Range and list modes are 0 (disabled), 1 or 2."""
        if value not in (0, 1, 2):
            raise ValueError(f"{info.field_name} must be 0, 1 or 2")
        return value

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, value: str) -> str:
        normalized = value.lower()
        allowed = {"none", "memory", "redis"}
        if normalized not in allowed:
            raise ValueError(f"cache_backend must be one of {sorted(allowed)}")
        return normalized

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, value: str) -> str:
        if not value.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(f"redis_url must start with redis://, rediss:// or unix://, got: {value}")
        return value

    @field_validator("cache_ttl_sec")
    @classmethod
    def validate_cache_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("cache_ttl_sec must be > 0")
        return value

    @field_validator("cache_sweep_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_access_configuration(self):
        """Validate cross-field configuration."""
        if self.token_range and not self.token.strip():
            logger.warning(
                "Token check enabled without any configured token - "
                "only the range default decides access"
            )
        return self

    @property
    def allowed_tokens(self) -> list[AllowEntry]:
        return self._allowed_tokens

    @property
    def allowed_user_agents(self) -> list[AllowEntry]:
        return self._allowed_user_agents

    @property
    def icon_dir(self) -> Path:
        return Path(self.data_dir) / "icon"

    @property
    def live_dir(self) -> Path:
        return Path(self.data_dir) / "live"

    def __init__(self, **data):
        """Initialize settings, compile allow-lists and log configuration."""
        super().__init__(**data)

        # Compile once so bad regex entries are reported at startup
        self._allowed_tokens = compile_allow_list(self.token)
        self._allowed_user_agents = compile_allow_list(self.user_agent)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_url)
        logger.info("  Data Directory: %s", self.data_dir)
        logger.info("  Server URL: %s", self.server_url)
        logger.info("  Timezone: %s", self.timezone)
        logger.info("  Token Range: %s (%s entries)", self.token_range, len(self.allowed_tokens))
        logger.info(
            "  User-Agent Range: %s (%s entries)",
            self.user_agent_range,
            len(self.allowed_user_agents),
        )
        logger.info("  IP List Mode: %s", self.ip_list_mode or "disabled")
        logger.info("  Access Log: %s", "enabled" if self.debug_mode else "disabled")
        logger.info("  Default Data: %s", "enabled" if self.ret_default else "disabled")
        logger.info("  XMLTV Files: %s", "enabled" if self.gen_xml else "disabled")
        logger.info("  Cache Backend: %s (TTL %ss)", self.cache_backend, self.cache_ttl_sec)
        logger.info("  Cache Clear API: %s", "enabled" if self.admin_token else "disabled")


settings = CustomSettings()


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
