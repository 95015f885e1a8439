from functools import lru_cache
from pathlib import Path
from typing import Optional

from dateutil import tz
from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_PATH = BASE_DIR / ".env"

load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    # Source documents, one per school day; {day} is the German weekday name
    SOURCE_URL_TEMPLATE: str = "https://buessing.schule/plaene/VertretungsplanA4_{day}.pdf"
    # Full value of the Authorization header, e.g. "Basic ..."
    SOURCE_AUTHORIZATION: Optional[str] = None
    FETCH_TIMEOUT: float = 20.0

    # Refresh loop
    REFRESH_INTERVAL: int = 20
    REFRESH_WORKERS: int = 4

    # External table extraction (tabula)
    JAVA_BIN: str = "java"
    TABULA_JAR: str = "./tabula/tabula.jar"
    EXTRACTION_TIMEOUT: float = 60.0
    TEMP_ROOT_DIR: str = "/tmp/school-substitution-scanner-temp-dir"

    # Wall clock used to pick the current school day
    TIMEZONE: str = "Europe/Berlin"
    # Zone whose midnight the issue date is pinned to
    ISSUE_DATE_TIMEZONE: str = "UTC"

    # Audit store
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'substitutions.db'}"
    AUDIT_ENABLED: bool = True

    # HTTP
    HOST: str = "127.0.0.1"
    PORT: int = 8080
    RETRY_AFTER_SECONDS: int = 120

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_TO_DB: bool = False

    @field_validator("TIMEZONE", "ISSUE_DATE_TIMEZONE")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        if tz.gettz(value) is None:
            raise ValueError(f"unknown time zone {value!r}")
        return value

    class Config:
        env_file = ENV_PATH
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
