from __future__ import annotations
import logging
from dataclasses import dataclass

from fastapi import Request

from .audio_cache import AudioCacheStore
from .db import Database
from .gemini_client import GeminiClient
from .generation import StoryGenerator
from .pipeline import StoryAssemblyPipeline
from .settings import Settings
from .stories import StoryStore
from .tts_client import SpeechSynthesizer, VoiceParams, paragraph_voice, word_voice
from .words import WordKnowledgeStore


logger = logging.getLogger(__name__)


@dataclass
class AppContext:
	"""Every long-lived component of the service, built once at startup."""

	settings: Settings
	database: Database
	generator: StoryGenerator
	synthesizer: SpeechSynthesizer
	words: WordKnowledgeStore
	audio_cache: AudioCacheStore
	stories: StoryStore
	pipeline: StoryAssemblyPipeline

	@classmethod
	def from_settings(cls, settings: Settings) -> "AppContext":
		database = Database(settings.database_url)
		generator = StoryGenerator(GeminiClient(settings), language=settings.story_language)
		synthesizer = SpeechSynthesizer(settings.speech_api_key, timeout=settings.tts_timeout_seconds)
		return cls.assemble(settings, database, generator, synthesizer)

	@classmethod
	def assemble(cls, settings: Settings, database: Database, generator, synthesizer) -> "AppContext":
		stories = StoryStore(database)
		audio_cache = AudioCacheStore(database)
		pipeline = StoryAssemblyPipeline(
			generator,
			synthesizer,
			stories,
			audio_cache,
			voice=paragraph_voice(settings),
			max_retries=settings.generation_max_retries,
			retry_delay_ms=settings.generation_retry_delay_ms,
			media_concurrency=settings.media_concurrency,
			timeout_seconds=settings.story_timeout_seconds,
		)
		return cls(
			settings=settings,
			database=database,
			generator=generator,
			synthesizer=synthesizer,
			words=WordKnowledgeStore(database),
			audio_cache=audio_cache,
			stories=stories,
			pipeline=pipeline,
		)

	@property
	def paragraph_voice(self) -> VoiceParams:
		return paragraph_voice(self.settings)

	@property
	def word_voice(self) -> VoiceParams:
		return word_voice(self.settings)

	def startup(self) -> None:
		self.database.create_all()
		logger.info("Storage ready (%s)", self.database.dialect)

	async def aclose(self) -> None:
		try:
			await self.generator.aclose()
			await self.synthesizer.aclose()
		finally:
			self.database.dispose()


def get_context(request: Request) -> AppContext:
	"""FastAPI dependency: the context the running app was started with."""
	return request.app.state.context
