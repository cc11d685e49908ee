from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"))
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Text model used for stories and contextual definitions
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Image-capable model used for paragraph illustrations
	gemini_image_model: str = Field(default="gemini-2.5-flash-image-preview", validation_alias="GEMINI_IMAGE_MODEL")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")
	gemini_timeout_seconds: float = Field(default=120.0, validation_alias="GEMINI_TIMEOUT_SECONDS")

	# Language the stories are written in (and narrated in)
	story_language: str = Field(default="French", validation_alias="STORY_LANGUAGE")

	# Text-to-speech; falls back to the Gemini key when unset
	tts_api_key: str | None = Field(default=None, validation_alias="TTS_API_KEY")
	tts_language_code: str = Field(default="fr-FR", validation_alias="TTS_LANGUAGE_CODE")
	tts_voice_name: str = Field(default="fr-FR-Neural2-A", validation_alias="TTS_VOICE_NAME")
	tts_voice_gender: str = Field(default="FEMALE", validation_alias="TTS_VOICE_GENDER")
	tts_paragraph_rate: float = Field(default=1.0, validation_alias="TTS_PARAGRAPH_RATE")
	# Slower for individual words
	tts_word_rate: float = Field(default=0.8, validation_alias="TTS_WORD_RATE")
	tts_timeout_seconds: float = Field(default=60.0, validation_alias="TTS_TIMEOUT_SECONDS")

	# Retry policy for upstream generation calls; kept small because calls are costly
	generation_max_retries: int = Field(default=1, ge=0, validation_alias="GENERATION_MAX_RETRIES")
	generation_retry_delay_ms: int = Field(default=1000, ge=0, validation_alias="GENERATION_RETRY_DELAY_MS")
	# 1 means paragraphs are illustrated/narrated one at a time
	media_concurrency: int = Field(default=1, ge=1, validation_alias="MEDIA_CONCURRENCY")
	# Ceiling for a whole story assembly (several sequential model calls)
	story_timeout_seconds: float = Field(default=300.0, gt=0, validation_alias="STORY_TIMEOUT_SECONDS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

	@property
	def speech_api_key(self) -> str | None:
		return self.tts_api_key or self.gemini_api_key
