import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DEFAULT_DATA_PATH = Path(__file__).resolve().parent / "data" / "training_store.json"


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="TRAINING_DATABASE_URL")
    database_pool_size: int = Field(10, alias="TRAINING_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="TRAINING_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="TRAINING_DATABASE_ECHO")
    persistence_mode: Literal["database", "file"] = Field("file", alias="TRAINING_PERSISTENCE_MODE")
    data_path: Path = Field(DEFAULT_DATA_PATH, alias="TRAINING_DATA_PATH")
    seed_demo_data: bool = Field(True, alias="TRAINING_SEED_DEMO_DATA")
    sequential_gating: Literal["enforce", "hint"] = Field("enforce", alias="TRAINING_SEQUENTIAL_GATING")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
