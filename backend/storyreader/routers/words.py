from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends

from ..context import AppContext, get_context
from ..schemas import AdvanceRequest, DefinitionOut, WordLevelRequest, WordOut
from ..text_utils import tokenize_words
from ..words import WordRecord


router = APIRouter(prefix="/api/words", tags=["words"])


def word_out(record: WordRecord) -> WordOut:
    return WordOut(
        word=record.word,
        level=record.level,
        definitions=[
            DefinitionOut(sentence=d.sentence, translation=d.translation, definition=d.definition)
            for d in record.definitions
        ],
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.get("", response_model=List[WordOut])
def list_words(ctx: AppContext = Depends(get_context)):
    return [word_out(r) for r in ctx.words.list()]


@router.post("", response_model=WordOut)
def set_level(req: WordLevelRequest, ctx: AppContext = Depends(get_context)):
    # Out-of-range levels raise ValidationError -> 400
    return word_out(ctx.words.upsert_level(req.word, req.level))


@router.post("/advance", response_model=List[WordOut])
def advance(req: AdvanceRequest, ctx: AppContext = Depends(get_context)):
    """The learner moved past a paragraph: its never-seen words count as mastered."""
    words = list(req.words)
    if req.paragraph:
        words.extend(tokenize_words(req.paragraph))
    return [word_out(r) for r in ctx.words.auto_master(words)]
