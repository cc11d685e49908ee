"""
Per-word knowledge records.

A word (stripped, lower-cased) has a knowledge level on a flat 0..5 scale
and an ordered list of contextual definitions. Every mutation is a single
atomic statement against the store: level changes touch only the level
columns of ``words``; definitions are rows of their own, so a level change
and a definition append for the same word never overwrite each other.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import delete, select, update

from .db import Database
from .errors import ValidationError, with_retry
from .models import Word, WordDefinition, utcnow
from .text_utils import locate_sentence, normalize_word


logger = logging.getLogger(__name__)

MIN_LEVEL = 0
MAX_LEVEL = 5

KNOWLEDGE_LEVELS: Dict[int, str] = {
    0: "never seen",
    1: "barely know",
    2: "familiar",
    3: "know well",
    4: "confident",
    5: "mastered",
}


@dataclass(frozen=True)
class DefinitionEntry:
    sentence: str = ""
    translation: str = ""
    definition: str = ""

    def as_tuple(self) -> Tuple[str, str, str]:
        return (self.sentence, self.translation, self.definition)

    def to_payload(self) -> Dict[str, str]:
        return {"sentence": self.sentence, "translation": self.translation, "definition": self.definition}


@dataclass(frozen=True)
class DefinitionMatcher:
    """Value matcher for removal; a field left as None matches anything."""

    sentence: Optional[str] = None
    translation: Optional[str] = None
    definition: Optional[str] = None

    def matches(self, entry: DefinitionEntry) -> bool:
        for wanted, actual in zip((self.sentence, self.translation, self.definition), entry.as_tuple()):
            if wanted is not None and wanted != actual:
                return False
        return True


@dataclass
class WordRecord:
    word: str
    level: int
    definitions: List[DefinitionEntry] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def normalize_definition(raw: Any) -> DefinitionEntry:
    """Upgrade a stored definition to the structured shape.

    Older records stored definitions as bare strings; those become the
    ``definition`` field with an empty sentence and translation.
    """
    if isinstance(raw, str):
        return DefinitionEntry(definition=raw)
    if isinstance(raw, dict):
        return DefinitionEntry(
            sentence=str(raw.get("sentence") or ""),
            translation=str(raw.get("translation") or ""),
            definition=str(raw.get("definition") or ""),
        )
    return DefinitionEntry(definition="" if raw is None else str(raw))


def _validated_word(word: str) -> str:
    w = normalize_word(word)
    if not w:
        raise ValidationError("Missing word")
    return w


def _validated_level(level: Any) -> int:
    if isinstance(level, bool) or not isinstance(level, int) or not (MIN_LEVEL <= level <= MAX_LEVEL):
        names = ", ".join(f"{k} = {v}" for k, v in KNOWLEDGE_LEVELS.items())
        raise ValidationError(f"Invalid level: must be an integer between {MIN_LEVEL} and {MAX_LEVEL} ({names})")
    return level


class WordKnowledgeStore:
    def __init__(self, database: Database) -> None:
        self.database = database

    def upsert_level(self, word: str, level: int) -> WordRecord:
        w = _validated_word(word)
        lvl = _validated_level(level)
        now = utcnow()
        stmt = self.database.insert(Word).values(word=w, level=lvl, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Word.word],
            set_={"level": lvl, "updated_at": now},
        )
        with self.database.session() as db:
            db.execute(stmt)
        return self._require(w)

    def add_definition(self, word: str, entry: DefinitionEntry) -> WordRecord:
        w = _validated_word(word)
        now = utcnow()
        # First sighting through a definition request starts at "never seen"
        stmt = self.database.insert(Word).values(word=w, level=MIN_LEVEL, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(index_elements=[Word.word], set_={"updated_at": now})
        with self.database.session() as db:
            db.execute(stmt)
            db.add(WordDefinition(word=w, payload=entry.to_payload(), created_at=now))
        return self._require(w)

    def remove_definition(self, word: str, matcher: DefinitionMatcher) -> Optional[WordRecord]:
        w = normalize_word(word)
        with self.database.session() as db:
            rows = db.execute(
                select(WordDefinition.id, WordDefinition.payload).where(WordDefinition.word == w)
            ).all()
            doomed = [row.id for row in rows if matcher.matches(normalize_definition(row.payload))]
            if doomed:
                db.execute(delete(WordDefinition).where(WordDefinition.id.in_(doomed)))
                db.execute(
                    update(Word).where(Word.word == w).values(updated_at=utcnow())
                )
        if doomed:
            logger.info("Removed %d definition(s) of %r", len(doomed), w)
        return self.get(w)

    def auto_master(self, words: Iterable[str]) -> List[WordRecord]:
        """Promote "never seen" words to "mastered" after a paragraph has been read.

        Words the learner already rated above 0 are left alone. Words with no
        record yet count as never seen.
        """
        targets = list(dict.fromkeys(w for w in (normalize_word(x) for x in words) if w))
        if not targets:
            return []
        now = utcnow()
        stmt = self.database.insert(Word).values(
            [{"word": w, "level": MAX_LEVEL, "created_at": now, "updated_at": now} for w in targets]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Word.word],
            set_={"level": MAX_LEVEL, "updated_at": now},
            where=Word.level == MIN_LEVEL,
        )
        with self.database.session() as db:
            db.execute(stmt)
        records = {r.word: r for r in self._load(targets)}
        return [records[w] for w in targets if w in records]

    def get(self, word: str) -> Optional[WordRecord]:
        w = normalize_word(word)
        found = self._load([w])
        return found[0] if found else None

    def list(self) -> List[WordRecord]:
        return self._load(None)

    def _require(self, word: str) -> WordRecord:
        record = self.get(word)
        if record is None:
            raise LookupError(f"word {word!r} vanished after upsert")
        return record

    def _load(self, words: Optional[List[str]]) -> List[WordRecord]:
        with self.database.session() as db:
            query = select(Word).order_by(Word.id)
            defs_query = select(WordDefinition.word, WordDefinition.payload).order_by(WordDefinition.id)
            if words is not None:
                query = query.where(Word.word.in_(words))
                defs_query = defs_query.where(WordDefinition.word.in_(words))
            rows = db.execute(query).scalars().all()
            definitions: Dict[str, List[DefinitionEntry]] = {}
            for def_word, payload in db.execute(defs_query).all():
                definitions.setdefault(def_word, []).append(normalize_definition(payload))
            return [
                WordRecord(
                    word=row.word,
                    level=row.level,
                    definitions=definitions.get(row.word, []),
                    created_at=row.created_at,
                    updated_at=row.updated_at,
                )
                for row in rows
            ]


class Definer(Protocol):
    async def define(self, word: str, sentence: str) -> Tuple[str, str]: ...


async def add_contextual_definition(
    store: WordKnowledgeStore,
    definer: Definer,
    word: str,
    paragraph: str,
    *,
    max_retries: int = 1,
    delay_ms: int = 1000,
) -> WordRecord:
    """Look up ``word`` in the sentence of ``paragraph`` where it occurs and store the gloss."""
    w = _validated_word(word)
    sentence = locate_sentence(paragraph, w)
    translation, definition = await with_retry(lambda: definer.define(w, sentence), max_retries, delay_ms)
    return store.add_definition(w, DefinitionEntry(sentence=sentence, translation=translation, definition=definition))
