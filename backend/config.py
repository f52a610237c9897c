"""
Configuration management for B2B Task Tracker
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "B2B Task Tracker"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./task_tracker.db"

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Jira Cloud
    JIRA_BASE_URL: str = ""        # e.g. "https://acme.atlassian.net"
    JIRA_EMAIL: str = ""
    JIRA_API_TOKEN: str = ""
    JIRA_PROJECT_KEY: str = ""
    JIRA_LABEL: str = "b2b-tracker"  # tracking label on every issue we own
    JIRA_TIMEOUT_SECONDS: float = 30.0

    # Google sign-in
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/api/auth/google/callback"
    ALLOWED_EMAIL_DOMAIN: str = "thinkhuge.net"
    SUPERADMIN_EMAIL: str = ""

    # Two-factor
    TOTP_ISSUER: str = "B2B Task Tracker"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def jira_configured(self) -> bool:
        return all([
            self.JIRA_BASE_URL,
            self.JIRA_EMAIL,
            self.JIRA_API_TOKEN,
            self.JIRA_PROJECT_KEY,
            self.JIRA_LABEL,
        ])

    def missing_settings(self) -> list[str]:
        """Names of integration settings that are still blank"""
        keys = [
            "JIRA_BASE_URL", "JIRA_EMAIL", "JIRA_API_TOKEN", "JIRA_PROJECT_KEY",
            "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET",
        ]
        return [key for key in keys if not getattr(self, key)]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
