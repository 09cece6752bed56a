"""Auth service settings loaded from AUTH_* environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

from mudauth.auth.challenges import CHALLENGE_TTL_SECONDS, SWEEP_INTERVAL_SECONDS
from mudauth.auth.session_manager import CLEANUP_INTERVAL_SECONDS, DEFAULT_SESSION_TTL_SECONDS


class AuthSettings(BaseSettings):
    model_config = {"env_prefix": "AUTH_"}

    # SQLite database file path
    database_path: str = "backend/storage.db"

    challenge_ttl_seconds: int = Field(default=CHALLENGE_TTL_SECONDS, gt=0)
    challenge_sweep_interval_seconds: int = Field(default=SWEEP_INTERVAL_SECONDS, gt=0)

    session_ttl_seconds: int = Field(default=DEFAULT_SESSION_TTL_SECONDS, gt=0)
    session_cleanup_interval_seconds: int = Field(default=CLEANUP_INTERVAL_SECONDS, gt=0)

    # Directory for timestamped log files; stdout only when unset
    log_dir: str | None = None
