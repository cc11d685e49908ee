from __future__ import annotations
import base64
from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class MediaPayload:
    mime_type: str
    data: bytes

    def to_wire(self) -> "MediaOut":
        return MediaOut(mime_type=self.mime_type, data_base64=base64.b64encode(self.data).decode("ascii"))


class CamelModel(BaseModel):
    # Wire format is camelCase; Python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MediaOut(CamelModel):
    mime_type: str
    data_base64: str


# ---- words ----

class DefinitionOut(CamelModel):
    sentence: str = ""
    translation: str = ""
    definition: str = ""


class WordOut(CamelModel):
    word: str
    level: int
    definitions: List[DefinitionOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WordLevelRequest(CamelModel):
    word: str = Field(min_length=1)
    # bools and numeric strings are rejected, not coerced
    level: int = Field(strict=True)


class AdvanceRequest(CamelModel):
    words: List[str] = []
    paragraph: Optional[str] = None


class DefinitionAddRequest(CamelModel):
    word: str = Field(min_length=1)
    paragraph: str = Field(min_length=1)


class DefinitionRemoveRequest(CamelModel):
    word: str = Field(min_length=1)
    sentence: str
    translation: Optional[str] = None
    definition: Optional[str] = None


# ---- audio ----

class WordAudioRequest(CamelModel):
    word: str = Field(min_length=1)


class TTSRequest(CamelModel):
    text: str = Field(min_length=1)
    type: Literal["paragraph", "word"] = "paragraph"
    story_id: Optional[str] = None
    paragraph_index: Optional[int] = Field(default=None, ge=0)


class AudioResponse(CamelModel):
    audio: MediaOut
    cached: bool


# ---- stories ----

class GenerateStoryRequest(CamelModel):
    prompt: str = Field(min_length=1)
    level: str = Field(min_length=1, description="CEFR level A1–C2")
    image_style: Optional[str] = None
    generate_tts: bool = Field(default=False, alias="generateTTS")


class GenerateStoryResponse(CamelModel):
    id: str
    image_errors: List[str] = []
    audio_errors: List[str] = []


class StorySummaryOut(CamelModel):
    id: str
    title: str
    level: str
    created_at: datetime


class ParagraphOut(CamelModel):
    index: int
    text: str
    image: Optional[MediaOut] = None
    audio: Optional[MediaOut] = None


class StoryOut(CamelModel):
    id: str
    title: str
    prompt: str
    level: str
    image_style: Optional[str] = None
    paragraphs: List[ParagraphOut]
    image_errors: Optional[List[str]] = None
    audio_errors: Optional[List[str]] = None
    has_tts: bool = Field(default=False, alias="hasTTS")
    created_at: datetime
