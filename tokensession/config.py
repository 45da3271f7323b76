"""Store configuration pulled from environment variables via pydantic."""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration for building a session store.

    Build one and pass it explicitly (for example to ``build_store``);
    nothing in the package reads settings behind the caller's back.
    """
    model_config = SettingsConfigDict(env_prefix="TOKENSESSION_", extra="ignore")

    store_backend: str = "redis"  # options: redis, memory
    redis_url: Optional[str] = None  # takes precedence over network/address/password/db
    redis_network: str = "tcp"  # options: tcp, unix
    redis_address: str = "localhost:6379"
    redis_password: Optional[str] = None
    redis_db: int = Field(default=0, ge=0)
    pool_size: int = Field(default=10, ge=1)
    idle_timeout_seconds: float = Field(default=240, ge=0)
    socket_timeout_seconds: Optional[float] = 5.0
    connect_timeout_seconds: Optional[float] = 5.0  # TCP connect only
    default_max_age: int = Field(default=30 * 86400, gt=0)
    max_payload_length: int = Field(default=4096, ge=0)  # 0 disables the limit
    key_prefix: str = "sess_"

    @field_validator("store_backend", "redis_network", mode="before")
    @classmethod
    def lowercase(cls, v: str) -> str:
        """Accept backend and network names in any case."""
        return str(v).strip().lower()

    @field_validator("redis_network", mode="after")
    @classmethod
    def known_network(cls, v: str) -> str:
        """Only TCP and unix sockets are dialable."""
        if v not in ("tcp", "unix"):
            raise ValueError(f"redis_network must be 'tcp' or 'unix', got '{v}'")
        return v
