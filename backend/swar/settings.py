from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# OpenAI-compatible chat completions gateway used for the session analysis
	ai_gateway_api_key: str | None = Field(default=None, validation_alias="AI_GATEWAY_API_KEY")
	ai_gateway_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="AI_GATEWAY_URL")
	ai_model: str = Field(default="google/gemini-2.5-flash", validation_alias="AI_MODEL")
	ai_referer: str = Field(default="https://localhost", validation_alias="AI_HTTP_REFERER")
	ai_title: str = Field(default="SWAR Screening", validation_alias="AI_TITLE")
	# Completion never waits longer than this on the analysis call
	ai_timeout_seconds: float = Field(default=20.0, validation_alias="AI_TIMEOUT_SECONDS")
	# Set to false to score sessions locally only
	ai_analysis_enabled: bool = Field(default=True, validation_alias="AI_ANALYSIS_ENABLED")

	# Screening policy
	flag_threshold_percent: int = Field(default=75, validation_alias="FLAG_THRESHOLD_PERCENT")

	# Server-side transcription (Google Cloud Speech-to-Text)
	transcription_language: str = Field(default="en-US", validation_alias="TRANSCRIPTION_LANGUAGE")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed teacher
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
