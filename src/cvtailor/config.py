from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "cvtailor"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8790
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/cvtailor.db"
    data_dir: Path = Path("./data")

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_extractor: str = "gpt-4.1-mini"
    openai_model_writer: str = "gpt-4.1"
    openai_timeout_sec: int = 120

    local_llm_enabled: bool = False
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_model: str = "qwen2.5:14b-instruct"
    local_llm_timeout_sec: int = 180

    llm_router_default: str = "openai"
    llm_router_extract_provider: str = "openai"
    llm_router_writer_provider: str = "openai"
    llm_router_refine_provider: str = "openai"
    llm_max_retries: int = 0

    extraction_max_tokens: int = 4096
    generation_max_tokens: int = 8192
    generation_temperature: float = 0.0

    fingerprint_strategy: str = "length"
    extraction_stale_after_sec: int = 900

    cors_origins: str = "http://127.0.0.1:8790"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("fingerprint_strategy")
    @classmethod
    def validate_fingerprint_strategy(cls, value: str) -> str:
        allowed = {"length", "content"}
        if value not in allowed:
            raise ValueError(f"fingerprint_strategy must be one of {sorted(allowed)}")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
