"""
Content-addressed cache for narration audio.

Two namespaces: paragraph audio keyed by the SHA-256 of the stripped text,
and word audio keyed by the normalized word itself. Each key maps to at most
one stored clip; the unique index on the key is the only synchronisation.
Caching is best-effort: a failed lookup is a miss and a failed insert is
logged and ignored, the freshly generated clip is returned either way.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .db import Database
from .models import ParagraphAudio, WordAudio, utcnow
from .schemas import MediaPayload
from .text_utils import content_hash, normalize_word


logger = logging.getLogger(__name__)

AudioGenerator = Callable[[str], Awaitable[MediaPayload]]


@dataclass(frozen=True)
class CachedAudio:
    payload: MediaPayload
    cached: bool


class AudioCacheStore:
    def __init__(self, database: Database) -> None:
        self.database = database

    # ---- paragraph namespace ----

    def get_paragraph(self, text: str) -> Optional[MediaPayload]:
        key = content_hash(text)
        return self._lookup(select(ParagraphAudio).where(ParagraphAudio.text_hash == key), key)

    async def get_or_generate_paragraph(self, text: str, generator: AudioGenerator) -> CachedAudio:
        key = content_hash(text)
        hit = self.get_paragraph(text)
        if hit is not None:
            return CachedAudio(hit, cached=True)
        payload = await generator(text.strip())
        self._insert(
            ParagraphAudio(text_hash=key, text=text, mime_type=payload.mime_type, data=payload.data, created_at=utcnow()),
            key,
        )
        return CachedAudio(payload, cached=False)

    # ---- word namespace ----

    def get_word(self, word: str) -> Optional[MediaPayload]:
        key = normalize_word(word)
        return self._lookup(select(WordAudio).where(WordAudio.word == key), key)

    async def get_or_generate_word(self, word: str, generator: AudioGenerator) -> CachedAudio:
        key = normalize_word(word)
        hit = self.get_word(key)
        if hit is not None:
            return CachedAudio(hit, cached=True)
        payload = await generator(key)
        self._insert(
            WordAudio(word=key, mime_type=payload.mime_type, data=payload.data, created_at=utcnow()),
            key,
        )
        return CachedAudio(payload, cached=False)

    # ---- shared ----

    def _lookup(self, query, key: str) -> Optional[MediaPayload]:
        try:
            with self.database.session() as db:
                row = db.execute(query).scalars().first()
                if row is None:
                    return None
                return MediaPayload(mime_type=row.mime_type, data=bytes(row.data))
        except SQLAlchemyError as exc:
            logger.warning("Audio cache lookup failed for %s, treating as miss: %s", key[:64], exc)
            return None

    def _insert(self, row, key: str) -> None:
        try:
            with self.database.session() as db:
                db.add(row)
        except IntegrityError:
            # Another writer generated the same clip first; theirs stays
            logger.warning("Audio cache entry %s already written by a concurrent request", key[:64])
        except SQLAlchemyError as exc:
            logger.warning("Failed to cache audio %s: %s", key[:64], exc)
