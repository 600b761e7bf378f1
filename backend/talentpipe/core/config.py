import os
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from talentpipe.core.paths import resolve_repo_path


def _env_files() -> list[str]:
    base = resolve_repo_path("backend/.env")
    env = os.getenv("TP_ENVIRONMENT", "").strip().lower()
    files = [str(base)]
    if env and env != "development":
        files.append(str(resolve_repo_path(f"backend/.env.{env}")))
    else:
        files.append(str(resolve_repo_path("backend/.env.local")))
    return files


class Settings(BaseSettings):
    app_name: str = "Talentpipe"
    environment: str = "development"

    database_url: str = "sqlite+aiosqlite:///./talentpipe.db"

    auth_mode: Literal["dev"] = "dev"

    redis_url: str = Field(default="", validation_alias=AliasChoices("TP_REDIS_URL", "REDIS_URL"))
    event_channel: str = "talentpipe:events"

    enable_gmail: bool = False
    gmail_sender_email: str = ""
    gmail_sender_name: str = "Talentpipe"
    google_application_credentials: str = Field(
        default="secrets/google-service-account.json",
        validation_alias=AliasChoices(
            "TP_GOOGLE_APPLICATION_CREDENTIALS",
            "GOOGLE_APPLICATION_CREDENTIALS",
        ),
    )

    display_timezone: str = "UTC"
    default_interview_minutes: int = 30
    max_interview_minutes: int = 480

    enable_scheduler: bool = True
    feedback_reminder_hours: int = 24
    reminder_interval_minutes: int = 30

    model_config = SettingsConfigDict(env_prefix="TP_", env_file=_env_files(), extra="ignore")


settings = Settings()
