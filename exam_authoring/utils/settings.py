from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(default="dev", validation_alias="APP_ENV")

    # Generative content service (any OpenAI-compatible chat-completions endpoint)
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL")
    generation_model: str = Field(default="gpt-4o-mini", validation_alias="GENERATION_MODEL")
    generation_timeout_seconds: float = Field(
        # The service latency is unbounded; a timeout surfaces as a service error.
        default=120.0, validation_alias="GENERATION_TIMEOUT_SECONDS"
    )
    generation_temperature: float = Field(default=0.4, validation_alias="GENERATION_TEMPERATURE")
    generation_max_tokens: int = Field(default=8192, validation_alias="GENERATION_MAX_TOKENS")
    generation_connect_retries: int = Field(
        # Total attempts for connection-establishment failures only.
        # Timeouts and unparseable output are never retried.
        default=2, validation_alias="GENERATION_CONNECT_RETRIES"
    )

    # Source material limits
    source_material_max_chars: int = Field(default=30000, validation_alias="SOURCE_MATERIAL_MAX_CHARS")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES")
    max_generated_questions: int = Field(default=50, validation_alias="MAX_GENERATED_QUESTIONS")

    # Supabase (hosted relational store + auth)
    supabase_url: str | None = Field(default=None, validation_alias="SUPABASE_URL")
    supabase_key: str | None = Field(default=None, validation_alias="SUPABASE_KEY")
    supabase_service_role_key: str | None = Field(default=None, validation_alias="SUPABASE_SERVICE_ROLE_KEY")
    assessments_table: str = Field(default="assessments", validation_alias="ASSESSMENTS_TABLE")
    examinations_table: str = Field(default="examinations", validation_alias="EXAMINATIONS_TABLE")
    profiles_table: str = Field(default="profiles", validation_alias="PROFILES_TABLE")

    # Publication workflow
    allow_resubmission: bool = Field(default=True, validation_alias="ALLOW_RESUBMISSION")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    allow_origins: list[str] = Field(default=["*"], validation_alias="ALLOW_ORIGINS")
    log_to_file: bool = Field(default=True, validation_alias="LOG_TO_FILE")
    log_file_path: str = Field(
        default=os.path.join("logs", "backend.log"),
        validation_alias="LOG_FILE_PATH",
    )

    # When enabled, endpoints require Authorization: Bearer <jwt> verified against
    # Supabase Auth; otherwise the X-User-Id / X-User-Role dev headers apply.
    # Dev headers are never honoured when APP_ENV is prod, and they only grant
    # the admin role with DEV_ALLOW_ADMIN_HEADER=1.
    auth_required: bool = Field(default=False, validation_alias="AUTH_REQUIRED")
    dev_allow_admin_header: bool = Field(default=False, validation_alias="DEV_ALLOW_ADMIN_HEADER")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
