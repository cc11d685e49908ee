from __future__ import annotations

from fastapi import APIRouter, Depends

from ..context import AppContext, get_context
from ..schemas import DefinitionAddRequest, DefinitionRemoveRequest, WordOut
from ..text_utils import normalize_word
from ..words import DefinitionMatcher, add_contextual_definition
from .words import word_out


router = APIRouter(prefix="/api/definitions", tags=["definitions"])


@router.post("", response_model=WordOut)
async def add_definition(req: DefinitionAddRequest, ctx: AppContext = Depends(get_context)):
    record = await add_contextual_definition(
        ctx.words,
        ctx.generator,
        req.word,
        req.paragraph,
        max_retries=ctx.settings.generation_max_retries,
        delay_ms=ctx.settings.generation_retry_delay_ms,
    )
    return word_out(record)


@router.delete("", response_model=WordOut)
def remove_definition(req: DefinitionRemoveRequest, ctx: AppContext = Depends(get_context)):
    matcher = DefinitionMatcher(sentence=req.sentence, translation=req.translation, definition=req.definition)
    record = ctx.words.remove_definition(req.word, matcher)
    if record is None:
        # Unknown word: nothing to remove, nothing created
        return WordOut(word=normalize_word(req.word), level=0, definitions=[])
    return word_out(record)
