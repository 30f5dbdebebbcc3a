from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "nutrilog"
    schema_name: Optional[str] = None
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class S3Config(BaseSettings):
    """S3 configuration for logged media."""

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    image_bucket: str = "meal-images"
    audio_bucket: str = "audio-notes"

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class BedrockConfig(BaseSettings):
    """Amazon Bedrock configuration."""

    region: str = Field(
        default="us-east-1",
        validation_alias="BEDROCK_REGION",
    )
    model_id: str = Field(
        default="amazon.nova-lite-v1:0",
        validation_alias="BEDROCK_MODEL_ID",
    )
    vision_model_id: str = Field(
        default="amazon.nova-pro-v1:0",
        validation_alias="BEDROCK_VISION_MODEL_ID",
    )
    cleaning_model_id: str = Field(
        default="amazon.nova-micro-v1:0",
        validation_alias="BEDROCK_CLEANING_MODEL_ID",
    )
    max_tokens: int = Field(
        default=200,
        validation_alias="BEDROCK_MAX_TOKENS",
        ge=1,
        le=4096,
    )
    structured_max_tokens: int = Field(
        default=2000,
        validation_alias="BEDROCK_STRUCTURED_MAX_TOKENS",
        ge=1,
        le=8192,
    )
    classifier_max_tokens: int = Field(
        default=5,
        validation_alias="BEDROCK_CLASSIFIER_MAX_TOKENS",
        ge=1,
        le=64,
    )
    cleaning_max_tokens: int = Field(
        default=400,
        validation_alias="BEDROCK_CLEANING_MAX_TOKENS",
        ge=1,
        le=4096,
    )
    temperature: float = Field(
        default=0.0,
        validation_alias="BEDROCK_TEMPERATURE",
        ge=0.0,
        le=1.0,
    )
    top_p: float = Field(
        default=0.9,
        validation_alias="BEDROCK_TOP_P",
        ge=0.0,
        le=1.0,
    )
    read_timeout_seconds: float = Field(
        default=60.0,
        validation_alias="BEDROCK_READ_TIMEOUT_SECONDS",
        gt=0,
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_API_KEY",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class TranscribeConfig(BaseSettings):
    """Amazon Transcribe streaming configuration."""

    region: str = "us-east-1"
    language_code: str = "en-US"
    sample_rate_hz: int = 16000
    context_prompt: str = (
        "Short voice note about meals eaten or a workout done. Expect food names, "
        "brands, restaurant names, quantities, exercise names, durations in minutes."
    )
    clean_transcripts: bool = True

    model_config = SettingsConfigDict(
        env_prefix="TRANSCRIBE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class AudioConfig(BaseSettings):
    """ffmpeg preprocessing configuration for voice notes."""

    ffmpeg_binary: str = "ffmpeg"
    rnnoise_model_path: Optional[str] = None
    silence_threshold_db: int = -50
    loudness_target_lufs: float = -22
    true_peak_db: float = -2
    loudness_range: float = 7
    sample_rate_hz: int = 16000
    timeout_seconds: float = 60.0
    debug_dir: str = "/tmp"

    model_config = SettingsConfigDict(
        env_prefix="AUDIO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class ProfileConfig(BaseSettings):
    """Default user profile used by the workout energy estimate."""

    weight_kg: float = Field(default=70.0, gt=0)
    age: int = Field(default=30, ge=0)
    sex: str = "unknown"
    device_adjust: float = Field(
        default=1.0,
        validation_alias="APPLE_WATCH_ADJUST",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="USER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


class MetaConfig(BaseSettings):
    """WhatsApp Cloud API (Meta Graph) configuration."""

    verify_token: SecretStr = Field(default=SecretStr(""))
    page_access_token: SecretStr = Field(default=SecretStr(""))
    phone_number_id: str = ""
    graph_version: str = "v17.0"
    graph_base_url: str = "https://graph.facebook.com"
    media_max_retries: int = Field(default=3, ge=0)
    media_retry_base_seconds: float = Field(default=0.3, ge=0)
    lookup_timeout_seconds: float = 10.0
    download_timeout_seconds: float = 20.0
    send_timeout_seconds: float = 15.0

    model_config = SettingsConfigDict(
        env_prefix="META_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Nutrilog"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/analysis_pipeline.log"
    transcript_log_file: str = "logs/transcripts.log"
    persist_request_logs: bool = False
    init_db_on_startup: bool = True

    # Public URL of this service, used by the voice-note fallback path
    public_base_url: str = "http://localhost:8000"
    loopback_timeout_seconds: float = 60.0

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # S3
    s3: S3Config = Field(default_factory=S3Config)

    # Bedrock
    bedrock: BedrockConfig = Field(default_factory=BedrockConfig)

    # Transcribe
    transcribe: TranscribeConfig = Field(default_factory=TranscribeConfig)

    # Voice note preprocessing
    audio: AudioConfig = Field(default_factory=AudioConfig)

    # Workout estimate profile
    profile: ProfileConfig = Field(default_factory=ProfileConfig)

    # WhatsApp
    meta: MetaConfig = Field(default_factory=MetaConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance, built once at process start and injected from there
settings = Settings()
