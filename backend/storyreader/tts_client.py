from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from google.cloud import texttospeech

from .schemas import MediaPayload
from .settings import Settings


@dataclass(frozen=True)
class VoiceParams:
	language_code: str = "fr-FR"
	name: str = "fr-FR-Neural2-A"
	gender: str = "FEMALE"
	speaking_rate: float = 1.0
	pitch: float = 0.0
	volume_gain_db: float = 0.0


def paragraph_voice(settings: Settings) -> VoiceParams:
	return VoiceParams(
		language_code=settings.tts_language_code,
		name=settings.tts_voice_name,
		gender=settings.tts_voice_gender,
		speaking_rate=settings.tts_paragraph_rate,
	)


def word_voice(settings: Settings) -> VoiceParams:
	return VoiceParams(
		language_code=settings.tts_language_code,
		name=settings.tts_voice_name,
		gender=settings.tts_voice_gender,
		speaking_rate=settings.tts_word_rate,
	)


class SpeechSynthesizer:
	"""Google Cloud Text-to-Speech, MP3 output.

	The gRPC client is created on first use and reused until aclose().
	"""

	MIME_TYPE = "audio/mpeg"

	def __init__(self, api_key: Optional[str], *, timeout: float = 60.0) -> None:
		self.api_key = api_key
		self.timeout = timeout
		self._client: Optional[texttospeech.TextToSpeechAsyncClient] = None

	def _get_client(self) -> texttospeech.TextToSpeechAsyncClient:
		if self._client is None:
			if not self.api_key:
				raise RuntimeError("TTS API key is not configured")
			self._client = texttospeech.TextToSpeechAsyncClient(client_options={"api_key": self.api_key})
		return self._client

	async def synthesize(self, text: str, voice: VoiceParams) -> MediaPayload:
		client = self._get_client()
		response = await client.synthesize_speech(
			input=texttospeech.SynthesisInput(text=text),
			voice=texttospeech.VoiceSelectionParams(
				language_code=voice.language_code,
				name=voice.name,
				ssml_gender=texttospeech.SsmlVoiceGender[voice.gender.upper()],
			),
			audio_config=texttospeech.AudioConfig(
				audio_encoding=texttospeech.AudioEncoding.MP3,
				speaking_rate=voice.speaking_rate,
				pitch=voice.pitch,
				volume_gain_db=voice.volume_gain_db,
			),
			timeout=self.timeout,
		)
		if not response.audio_content:
			raise RuntimeError("No audio content received from TTS service")
		return MediaPayload(mime_type=self.MIME_TYPE, data=bytes(response.audio_content))

	async def aclose(self) -> None:
		if self._client is not None:
			await self._client.transport.close()
			self._client = None
