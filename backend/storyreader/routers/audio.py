from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from ..context import AppContext, get_context
from ..errors import with_retry
from ..schemas import AudioResponse, TTSRequest, WordAudioRequest
from ..text_utils import normalize_word


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["audio"])


@router.get("/word-audio", response_model=AudioResponse)
def get_word_audio(word: str = Query(default=""), ctx: AppContext = Depends(get_context)):
    if not normalize_word(word):
        raise HTTPException(status_code=400, detail="Missing word parameter")
    payload = ctx.audio_cache.get_word(word)
    if payload is None:
        raise HTTPException(status_code=404, detail="Word audio not found in cache")
    return AudioResponse(audio=payload.to_wire(), cached=True)


@router.post("/word-audio", response_model=AudioResponse)
async def create_word_audio(req: WordAudioRequest, ctx: AppContext = Depends(get_context)):
    if not normalize_word(req.word):
        raise HTTPException(status_code=400, detail="Missing word parameter")
    result = await ctx.audio_cache.get_or_generate_word(req.word, _speaker(ctx, ctx.word_voice))
    return AudioResponse(audio=result.payload.to_wire(), cached=result.cached)


@router.post("/tts", response_model=AudioResponse)
async def text_to_speech(req: TTSRequest, ctx: AppContext = Depends(get_context)):
    if req.type == "word":
        result = await ctx.audio_cache.get_or_generate_word(req.text, _speaker(ctx, ctx.word_voice))
        return AudioResponse(audio=result.payload.to_wire(), cached=result.cached)

    result = await ctx.audio_cache.get_or_generate_paragraph(req.text, _speaker(ctx, ctx.paragraph_voice))
    if req.story_id and req.paragraph_index is not None:
        # Saving onto the story is a convenience; the audio is returned regardless
        try:
            attached = ctx.stories.attach_paragraph_audio(req.story_id, req.paragraph_index, result.payload)
            if not attached:
                logger.warning("No paragraph %d in story %s to attach audio to", req.paragraph_index, req.story_id)
        except SQLAlchemyError as exc:
            logger.warning("Failed to save audio to story %s: %s", req.story_id, exc)
    return AudioResponse(audio=result.payload.to_wire(), cached=result.cached)


def _speaker(ctx: AppContext, voice):
    async def speak(text: str):
        return await with_retry(
            lambda: ctx.synthesizer.synthesize(text, voice),
            ctx.settings.generation_max_retries,
            ctx.settings.generation_retry_delay_ms,
        )

    return speak
