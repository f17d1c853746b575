"""
Application settings loaded from environment variables.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

_DEFAULT_DB_PATH = Path.home() / ".wearable-connect" / "credentials.db"


class Settings(BaseSettings):
    # ── Provider OAuth clients ──────────────────────────────────────────
    oura_client_id: str = ""
    oura_client_secret: Optional[str] = None
    whoop_client_id: str = ""
    whoop_client_secret: Optional[str] = None
    fitbit_client_id: str = ""
    fitbit_client_secret: Optional[str] = None
    google_fit_client_id: str = ""
    google_fit_client_secret: Optional[str] = None
    garmin_consumer_key: str = ""              # OAuth 1.0a, kept for status display only
    garmin_consumer_secret: Optional[str] = None

    # ── OAuth flow ──────────────────────────────────────────────────────
    oauth_redirect_uri: str = "mymacro://wearable-callback"   # one target for every provider
    pending_state_ttl_seconds: int = 600
    token_refresh_buffer_seconds: int = 300
    http_timeout_seconds: float = 15.0

    # ── Security Secrets ────────────────────────────────────────────────
    token_encryption_key: str = ""             # Fernet key for encrypting credentials at rest

    # ── Storage ─────────────────────────────────────────────────────────
    database_url: str = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}"

    # ── Server ──────────────────────────────────────────────────────────
    port: int = 8000
    host: str = "0.0.0.0"
    debug: bool = False

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }

    def provider_credentials(self, provider_id: str) -> tuple[str, Optional[str]]:
        """
        Return (client_id, client_secret) for a provider slug.
        """
        mapping = {
            "oura": (self.oura_client_id, self.oura_client_secret),
            "whoop": (self.whoop_client_id, self.whoop_client_secret),
            "fitbit": (self.fitbit_client_id, self.fitbit_client_secret),
            "google_fit": (self.google_fit_client_id, self.google_fit_client_secret),
            "garmin": (self.garmin_consumer_key, self.garmin_consumer_secret),
        }
        client_id, client_secret = mapping.get(provider_id, ("", None))
        return client_id, client_secret or None


config = Settings()
