from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# "development" exposes error details in responses
	app_env: str = Field(default="development", validation_alias="APP_ENV")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	frontend_url: str = Field(default="http://localhost:3000", validation_alias="FRONTEND_URL")

	# Database
	database_url: str = Field(default="sqlite:///./app.db", validation_alias="DATABASE_URL")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	# 7 days
	access_token_expire_minutes: int = Field(default=7 * 24 * 60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed admin (created at startup when both are set)
	seed_admin_email: str | None = Field(default=None, validation_alias="SEED_ADMIN_EMAIL")
	seed_admin_password: str | None = Field(default=None, validation_alias="SEED_ADMIN_PASSWORD")

	# Google OAuth
	google_client_id: str | None = Field(default=None, validation_alias="GOOGLE_CLIENT_ID")
	google_client_secret: str | None = Field(default=None, validation_alias="GOOGLE_CLIENT_SECRET")
	google_callback_url: str = Field(default="http://localhost:8000/api/auth/google/callback", validation_alias="GOOGLE_CALLBACK_URL")

	# Provider can be "openai" (chat completions API) or "gemini" (Generative Language API)
	llm_provider: str = Field(default="openai", validation_alias="LLM_PROVIDER")
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	openai_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
	openai_base_url: str = Field(default="https://api.openai.com/v1/chat/completions", validation_alias="OPENAI_BASE_URL")
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	llm_timeout_seconds: float = Field(default=60, validation_alias="LLM_TIMEOUT_SECONDS")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	def is_development(self) -> bool:
		return self.app_env.lower() == "development"

settings = Settings()
