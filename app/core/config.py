from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Google service account (shared by Sheets and Calendar)
    google_client_email: str = ""
    google_private_key: str = ""
    google_project_id: str = ""

    # Systems of record
    spreadsheet_id: str = ""
    calendar_id: str = ""
    storage_backend: str = "sheets"  # "sheets" or "memory"

    # Admin credential check
    admin_password: str = ""
    secret_key: str = "change-me"
    access_token_expire_minutes: int = 12 * 60
    algorithm: str = "HS256"

    # Slot generation
    slot_interval_minutes: int = 15
    slot_mode: str = "shared"  # "shared" or "per_category"
    # Generate slots this many days ahead on startup and every 24h; 0 disables
    slot_horizon_days: int = 0

    # Calendar event times are written in the clinic's local offset
    calendar_utc_offset: str = "+09:00"

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "Clinic Booking"
    admin_notify_email: str = ""
    clinic_name: str = "スポーツキュアセンター横浜・健志台接骨院"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def private_key_pem(self) -> str:
        """Private key with escaped newlines restored (env files usually carry it on one line)."""
        return self.google_private_key.replace("\\n", "\n")

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_email and self.google_private_key)

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)


settings = Settings()
