from __future__ import annotations
import asyncio
from typing import Dict, List, Optional, Set, Tuple

import pytest
from fastapi.testclient import TestClient

from storyreader.context import AppContext
from storyreader.db import Database
from storyreader.generation import GeneratedStory
from storyreader.main import create_app
from storyreader.schemas import MediaPayload
from storyreader.settings import Settings
from storyreader.tts_client import VoiceParams


def run(coro):
    return asyncio.run(coro)


class FakeWriter:
    """Stands in for the Gemini-backed StoryGenerator."""

    configured = True

    def __init__(self, paragraphs: Optional[List[str]] = None, title: str = "Le chat") -> None:
        self.title = title
        self.paragraphs = paragraphs or [
            "Le chat dort.",
            "Le chien court dans le jardin.",
            "Les amis mangent ensemble.",
        ]
        self.story_error: Optional[BaseException] = None
        self.failing_images: Set[int] = set()
        self.story_calls = 0
        self.image_calls: Dict[str, int] = {}
        self.define_calls: List[Tuple[str, str]] = []
        self.closed = False

    async def generate_story(self, prompt: str, level: str) -> GeneratedStory:
        self.story_calls += 1
        if self.story_error is not None:
            raise self.story_error
        return GeneratedStory(title=self.title, paragraphs=list(self.paragraphs))

    async def generate_paragraph_image(self, paragraph: str, full_story: str, image_style: Optional[str] = None) -> MediaPayload:
        self.image_calls[paragraph] = self.image_calls.get(paragraph, 0) + 1
        if self.paragraphs.index(paragraph) in self.failing_images:
            raise RuntimeError("No image data returned from model")
        return MediaPayload(mime_type="image/png", data=b"png:" + paragraph.encode("utf-8"))

    async def define(self, word: str, sentence: str) -> Tuple[str, str]:
        self.define_calls.append((word, sentence))
        return f"tr-{word}", f"meaning of {word}"

    async def aclose(self) -> None:
        self.closed = True


class FakeSynthesizer:
    def __init__(self) -> None:
        self.calls: List[Tuple[str, VoiceParams]] = []
        self.error: Optional[BaseException] = None

    async def synthesize(self, text: str, voice: VoiceParams) -> MediaPayload:
        self.calls.append((text, voice))
        if self.error is not None:
            raise self.error
        return MediaPayload(mime_type="audio/mpeg", data=b"mp3:" + text.encode("utf-8"))

    async def aclose(self) -> None:
        pass


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        generation_retry_delay_ms=0,
        log_level="WARNING",
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def writer() -> FakeWriter:
    return FakeWriter()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def context(settings, database, writer, synthesizer) -> AppContext:
    return AppContext.assemble(settings, database, writer, synthesizer)


@pytest.fixture
def client(context):
    with TestClient(create_app(context=context)) as c:
        yield c
