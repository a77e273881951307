from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / "DocTrack"
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    # Downstream webhooks. An unset endpoint makes every delivery to it fail,
    # which leaves the outbox entry pending for a later drain.
    translation_webhook_url: str | None = None
    notification_webhook_url: str | None = None
    authenticator_webhook_url: str | None = None
    storage_public_base_url: str = "http://127.0.0.1:8000/storage/documents"

    webhook_timeout_seconds: float = 5.0
    outbox_max_attempts: int = 5

    operator_roles: list[str] = ["admin", "finance"]

    @property
    def db_path(self) -> Path:
        return self.data_dir / "doctrack.sqlite"

    model_config = {"env_prefix": "DOCTRACK_"}


settings = Settings()
