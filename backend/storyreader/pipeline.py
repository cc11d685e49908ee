"""
Story assembly: text, then per-paragraph illustration and narration.

Text generation failing aborts the story. Media failures do not: each
paragraph's image and audio are attempted independently and a failure
becomes a warning stored with the story. The story is inserted exactly
once, after all paragraphs have been processed.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .audio_cache import AudioCacheStore
from .errors import ErrorKind, GenerationError, classify, with_retry
from .generation import GeneratedStory
from .schemas import MediaPayload
from .stories import ParagraphRecord, StoryRecord, StoryStore
from .tts_client import VoiceParams


logger = logging.getLogger(__name__)


class StoryWriter(Protocol):
    async def generate_story(self, prompt: str, level: str) -> GeneratedStory: ...

    async def generate_paragraph_image(self, paragraph: str, full_story: str, image_style: Optional[str] = None) -> MediaPayload: ...


class Synthesizer(Protocol):
    async def synthesize(self, text: str, voice: VoiceParams) -> MediaPayload: ...


@dataclass
class StoryRequest:
    prompt: str
    level: str
    image_style: Optional[str] = None
    generate_tts: bool = False


@dataclass
class AssembledStory:
    story_id: str
    title: str
    paragraph_count: int
    image_errors: List[str] = field(default_factory=list)
    audio_errors: List[str] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return self.image_errors + self.audio_errors


@dataclass
class _ParagraphResult:
    record: ParagraphRecord
    image_error: Optional[str] = None
    audio_error: Optional[str] = None


def _warning(index: int, media: str, err: GenerationError) -> str:
    return f"Paragraph {index + 1}: {media} generation failed ({err.kind.value}): {err}"


class StoryAssemblyPipeline:
    def __init__(
        self,
        writer: StoryWriter,
        synthesizer: Synthesizer,
        stories: StoryStore,
        audio_cache: AudioCacheStore,
        *,
        voice: VoiceParams = VoiceParams(),
        max_retries: int = 1,
        retry_delay_ms: int = 1000,
        media_concurrency: int = 1,
        timeout_seconds: float = 300.0,
    ) -> None:
        self.writer = writer
        self.synthesizer = synthesizer
        self.stories = stories
        self.audio_cache = audio_cache
        self.voice = voice
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.media_concurrency = max(1, media_concurrency)
        self.timeout_seconds = timeout_seconds

    async def run(self, request: StoryRequest) -> AssembledStory:
        try:
            return await asyncio.wait_for(self._assemble(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("Story assembly exceeded %.0fs", self.timeout_seconds)
            raise classify(exc) from exc

    async def _assemble(self, request: StoryRequest) -> AssembledStory:
        try:
            story = await with_retry(
                lambda: self.writer.generate_story(request.prompt, request.level),
                self.max_retries,
                self.retry_delay_ms,
            )
        except GenerationError as err:
            logger.error("Story text generation failed (%s): %s", err.kind.value, err)
            raise
        full_text = "\n\n".join(story.paragraphs)

        results = await self._process_paragraphs(story.paragraphs, full_text, request)
        image_errors = [r.image_error for r in results if r.image_error]
        audio_errors = [r.audio_error for r in results if r.audio_error]

        record = StoryRecord(
            prompt=request.prompt,
            level=request.level,
            image_style=request.image_style or None,
            title=story.title,
            full_text=full_text,
            paragraphs=[r.record for r in results],
            image_errors=image_errors or None,
            audio_errors=audio_errors or None,
            has_tts=request.generate_tts,
        )
        try:
            story_id = self.stories.insert(record)
        except SQLAlchemyError as exc:
            logger.error("Failed to save generated story: %s", exc)
            raise GenerationError("Failed to save story", ErrorKind.DATABASE_ERROR, retryable=True, original=exc) from exc

        if image_errors or audio_errors:
            logger.warning(
                "Story %s saved with %d image and %d audio warning(s)",
                story_id, len(image_errors), len(audio_errors),
            )
        return AssembledStory(
            story_id=story_id,
            title=story.title,
            paragraph_count=len(results),
            image_errors=image_errors,
            audio_errors=audio_errors,
        )

    async def _process_paragraphs(self, paragraphs: List[str], full_text: str, request: StoryRequest) -> List[_ParagraphResult]:
        if self.media_concurrency == 1:
            return [await self._process_paragraph(i, p, full_text, request) for i, p in enumerate(paragraphs)]

        semaphore = asyncio.Semaphore(self.media_concurrency)

        async def bounded(i: int, p: str) -> _ParagraphResult:
            async with semaphore:
                return await self._process_paragraph(i, p, full_text, request)

        # gather keeps argument order, so results line up with paragraph indexes
        return list(await asyncio.gather(*(bounded(i, p) for i, p in enumerate(paragraphs))))

    async def _process_paragraph(self, index: int, text: str, full_text: str, request: StoryRequest) -> _ParagraphResult:
        result = _ParagraphResult(record=ParagraphRecord(index=index, text=text))

        image, err = await self._attempt(
            lambda: self.writer.generate_paragraph_image(text, full_text, request.image_style)
        )
        if err is not None:
            result.image_error = _warning(index, "image", err)
            logger.warning(result.image_error)
        result.record.image = image

        if request.generate_tts:
            audio, err = await self._attempt(lambda: self._narrate(text))
            if err is not None:
                result.audio_error = _warning(index, "audio", err)
                logger.warning(result.audio_error)
            result.record.audio = audio
        return result

    async def _narrate(self, text: str) -> MediaPayload:
        cached = await self.audio_cache.get_or_generate_paragraph(
            text, lambda t: self.synthesizer.synthesize(t, self.voice)
        )
        return cached.payload

    async def _attempt(self, operation) -> Tuple[Optional[MediaPayload], Optional[GenerationError]]:
        try:
            return await with_retry(operation, self.max_retries, self.retry_delay_ms), None
        except GenerationError as err:
            return None, err
