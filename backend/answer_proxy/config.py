"""
Store env variables and other config settings.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars to prevent crashes
    )

    app_name: str = "Application Answer Proxy"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_allow_origins: List[str] = ["*"]

    # Install tokens
    # NOTE: keep it optional for import-time, enforce at call-time.
    token_secret: SecretStr | None = Field(default=None, description="HMAC secret for install tokens")
    token_ttl_days: int = 90
    token_clock_skew_seconds: int = 60
    token_min_nonce_length: int = 8

    # LLM Configuration
    llm_provider: str = "groq"
    llm_api_key: SecretStr | None = Field(default=None, description="Generic key for the primary provider")
    llm_model: Optional[str] = None
    llm_fallback_enabled: bool = True
    upstream_timeout_seconds: float = 90.0

    groq_api_key: SecretStr | None = None
    groq_model: str = "llama-3.3-70b-versatile"
    groq_base_url: str = "https://api.groq.com/openai/v1"

    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o"
    openai_base_url: Optional[str] = None

    gemini_api_key: SecretStr | None = None
    gemini_model: str = "gemini-2.5-flash"

    mistral_api_key: SecretStr | None = None
    mistral_model: str = "mistral-small-latest"
    mistral_base_url: str = "https://api.mistral.ai/v1"

    together_api_key: SecretStr | None = None
    together_model: str = "meta-llama/Llama-3.3-70B-Instruct-Turbo"
    together_base_url: str = "https://api.together.xyz/v1"

    ollama_model: str = "llama3.2"
    ollama_base_url: str = "http://localhost:11434/v1"
    lmstudio_model: str = "local-model"
    lmstudio_base_url: str = "http://localhost:1234/v1"
    localai_model: str = "gpt-3.5-turbo"
    localai_base_url: str = "http://localhost:8080/v1"

    # Recipe (prompt builder) selection
    recipe_name: str = "default"

    # Rate limiting
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379"
    rate_limit_window_seconds: int = 3600
    rate_limit_register_per_hour: int = 20
    rate_limit_generate_per_hour: int = 60
    rate_limit_ip_per_hour: int = 300  # across all tokens; 0 disables

    # Uploads
    max_upload_bytes: int = 5 * 1024 * 1024

    # MLflow
    mlflow_enabled: bool = False
    mlflow_tracking_uri: str = "file:./mlruns"
    experiment_name: str = "answer_proxy_v1"


@lru_cache
def get_settings() -> Settings:
    return Settings()
