import os
from collections.abc import Mapping
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

GDELT_DOC_BASE = "https://api.gdeltproject.org/api/v2/doc/doc"

# Conservative limits for local development, looser ones for production.
DEV_PROFILE: dict[str, int] = {
    "timeout_ms": 15000,
    "max_concurrent": 1,
    "min_gap_ms": 800,
    "retry_max": 2,
    "retry_base_ms": 3000,
    "circuit_threshold": 8,
    "circuit_reset_ms": 60000,
    "dedup_ttl_ms": 60000,
}

PROD_PROFILE: dict[str, int] = {
    "timeout_ms": 12000,
    "max_concurrent": 3,
    "min_gap_ms": 250,
    "retry_max": 2,
    "retry_base_ms": 1500,
    "circuit_threshold": 15,
    "circuit_reset_ms": 30000,
    "dedup_ttl_ms": 30000,
}

_TRUTHY = {"1", "true", "yes", "on"}


def is_dev_mode(environ: Mapping[str, str]) -> bool:
    """GDELT_DEV_MODE wins; otherwise anything but APP_ENV=production is dev."""
    flag = environ.get("GDELT_DEV_MODE")
    if flag is not None and flag.strip():
        return flag.strip().lower() in _TRUTHY
    app_env = environ.get("APP_ENV") or environ.get("ENVIRONMENT") or "development"
    return app_env.strip().lower() != "production"


class GatewaySettings(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    dev_mode: bool = Field(default=True, alias="GDELT_DEV_MODE")
    base_url: str = Field(default=GDELT_DOC_BASE, alias="GDELT_BASE_URL")

    # Pacing and concurrency
    timeout_ms: int = Field(default=15000, ge=1, alias="GDELT_FETCH_TIMEOUT")
    max_concurrent: int = Field(default=1, ge=1, alias="GDELT_MAX_CONCURRENT")
    min_gap_ms: int = Field(default=800, ge=0, alias="GDELT_MIN_GAP_MS")
    max_queue: int = Field(default=500, ge=0, alias="GDELT_MAX_QUEUE")

    # Retry / circuit breaker
    retry_max: int = Field(default=2, ge=0, alias="GDELT_RETRY_MAX")
    retry_base_ms: int = Field(default=3000, ge=0, alias="GDELT_RETRY_BASE_MS")
    circuit_threshold: int = Field(default=8, ge=1, alias="GDELT_CIRCUIT_THRESHOLD")
    circuit_reset_ms: int = Field(default=60000, ge=0, alias="GDELT_CIRCUIT_RESET_MS")
    failure_decay: Literal["decrement", "reset"] = Field(
        default="decrement", alias="GDELT_FAILURE_DECAY"
    )

    # Dedup cache
    dedup_ttl_ms: int = Field(default=60000, ge=0, alias="GDELT_DEDUP_TTL_MS")
    dedup_max_entries: int = Field(default=200, ge=1, alias="GDELT_DEDUP_MAX_ENTRIES")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GatewaySettings":
        """
        Build settings from profile defaults plus environment overrides.

        The profile (dev or prod) only supplies defaults; any variable that is
        set explicitly takes precedence over it.
        """
        environ = os.environ if environ is None else environ
        dev_mode = is_dev_mode(environ)

        values: dict[str, object] = dict(DEV_PROFILE if dev_mode else PROD_PROFILE)
        for name, field in cls.model_fields.items():
            if not field.alias or name == "dev_mode":
                continue
            # Blank values (e.g. `GDELT_MAX_CONCURRENT=` in a .env template) count as unset
            raw = environ.get(field.alias, "")
            if raw.strip():
                values[name] = raw.strip()
        values["dev_mode"] = dev_mode
        return cls(**values)

    @property
    def profile(self) -> str:
        return "dev" if self.dev_mode else "prod"

    # Seconds, for asyncio and monotonic clocks

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000

    @property
    def min_gap(self) -> float:
        return self.min_gap_ms / 1000

    @property
    def retry_base_delay(self) -> float:
        return self.retry_base_ms / 1000

    @property
    def circuit_reset(self) -> float:
        return self.circuit_reset_ms / 1000

    @property
    def dedup_ttl(self) -> float:
        return self.dedup_ttl_ms / 1000

    def summary(self) -> str:
        return (
            f"Mode: {self.profile.upper()} | concurrent={self.max_concurrent} "
            f"gap={self.min_gap_ms}ms timeout={self.timeout_ms}ms "
            f"circuit={self.circuit_threshold}/{self.circuit_reset_ms}ms "
            f"dedup={self.dedup_ttl_ms}ms"
        )


global_settings = GatewaySettings.from_env()
