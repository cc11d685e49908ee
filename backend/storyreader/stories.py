from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update

from .db import Database
from .models import Story, StoryParagraph, utcnow
from .schemas import MediaPayload


RECENT_LIMIT = 20


@dataclass
class ParagraphRecord:
    index: int
    text: str
    image: Optional[MediaPayload] = None
    audio: Optional[MediaPayload] = None


@dataclass
class StoryRecord:
    prompt: str
    level: str
    full_text: str
    paragraphs: List[ParagraphRecord]
    title: Optional[str] = None
    image_style: Optional[str] = None
    image_errors: Optional[List[str]] = None
    audio_errors: Optional[List[str]] = None
    has_tts: bool = False
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def display_title(self) -> str:
        return self.title or self.prompt or "Untitled"


@dataclass
class StorySummary:
    id: str
    title: str
    level: str
    created_at: datetime


def _media(mime_type: Optional[str], data: Optional[bytes]) -> Optional[MediaPayload]:
    if not mime_type or data is None:
        return None
    return MediaPayload(mime_type=mime_type, data=bytes(data))


class StoryStore:
    def __init__(self, database: Database) -> None:
        self.database = database

    def insert(self, record: StoryRecord) -> str:
        story_id = uuid.uuid4().hex
        row = Story(
            id=story_id,
            prompt=record.prompt,
            level=record.level,
            image_style=record.image_style,
            title=record.title,
            full_text=record.full_text,
            image_errors=record.image_errors,
            audio_errors=record.audio_errors,
            has_tts=record.has_tts,
            created_at=record.created_at or utcnow(),
        )
        for p in record.paragraphs:
            row.paragraphs.append(
                StoryParagraph(
                    index=p.index,
                    text=p.text,
                    image_mime_type=p.image.mime_type if p.image else None,
                    image_data=p.image.data if p.image else None,
                    audio_mime_type=p.audio.mime_type if p.audio else None,
                    audio_data=p.audio.data if p.audio else None,
                )
            )
        with self.database.session() as db:
            db.add(row)
        return story_id

    def get(self, story_id: str) -> Optional[StoryRecord]:
        with self.database.session() as db:
            row = db.get(Story, story_id)
            if row is None:
                return None
            return StoryRecord(
                id=row.id,
                prompt=row.prompt,
                level=row.level,
                image_style=row.image_style,
                title=row.title,
                full_text=row.full_text,
                paragraphs=[
                    ParagraphRecord(
                        index=p.index,
                        text=p.text,
                        image=_media(p.image_mime_type, p.image_data),
                        audio=_media(p.audio_mime_type, p.audio_data),
                    )
                    for p in row.paragraphs
                ],
                image_errors=row.image_errors,
                audio_errors=row.audio_errors,
                has_tts=row.has_tts,
                created_at=row.created_at,
            )

    def list_recent(self, limit: int = RECENT_LIMIT) -> List[StorySummary]:
        with self.database.session() as db:
            rows = db.execute(
                select(Story.id, Story.title, Story.prompt, Story.level, Story.created_at)
                .order_by(Story.created_at.desc())
                .limit(limit)
            ).all()
            return [
                StorySummary(id=r.id, title=r.title or r.prompt or "Untitled", level=r.level, created_at=r.created_at)
                for r in rows
            ]

    def delete(self, story_id: str) -> bool:
        with self.database.session() as db:
            row = db.get(Story, story_id)
            if row is None:
                return False
            db.delete(row)
        return True

    def attach_paragraph_audio(self, story_id: str, index: int, audio: MediaPayload) -> bool:
        with self.database.session() as db:
            result = db.execute(
                update(StoryParagraph)
                .where(StoryParagraph.story_id == story_id, StoryParagraph.index == index)
                .values(audio_mime_type=audio.mime_type, audio_data=audio.data)
            )
            return bool(result.rowcount)
