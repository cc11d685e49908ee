from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response

from ..context import AppContext, get_context
from ..pipeline import StoryRequest
from ..schemas import GenerateStoryRequest, GenerateStoryResponse, ParagraphOut, StoryOut, StorySummaryOut


router = APIRouter(prefix="/api", tags=["stories"])


@router.post("/generate-story", status_code=201, response_model=GenerateStoryResponse)
async def generate_story(req: GenerateStoryRequest, ctx: AppContext = Depends(get_context)):
    # GenerationError (text or save failure) is rendered by the app-level handler
    assembled = await ctx.pipeline.run(
        StoryRequest(
            prompt=req.prompt,
            level=req.level,
            image_style=req.image_style,
            generate_tts=req.generate_tts,
        )
    )
    return GenerateStoryResponse(
        id=assembled.story_id,
        image_errors=assembled.image_errors,
        audio_errors=assembled.audio_errors,
    )


@router.get("/stories", response_model=List[StorySummaryOut])
def list_stories(ctx: AppContext = Depends(get_context)):
    return [
        StorySummaryOut(id=s.id, title=s.title, level=s.level, created_at=s.created_at)
        for s in ctx.stories.list_recent()
    ]


@router.get("/stories/{story_id}", response_model=StoryOut, response_model_exclude_none=True)
def get_story(story_id: str, ctx: AppContext = Depends(get_context)):
    story = ctx.stories.get(story_id)
    if story is None:
        raise HTTPException(status_code=404, detail="Not found")
    return StoryOut(
        id=story.id,
        title=story.display_title,
        prompt=story.prompt,
        level=story.level,
        image_style=story.image_style,
        paragraphs=[
            ParagraphOut(
                index=p.index,
                text=p.text,
                image=p.image.to_wire() if p.image else None,
                audio=p.audio.to_wire() if p.audio else None,
            )
            for p in story.paragraphs
        ],
        image_errors=story.image_errors,
        audio_errors=story.audio_errors,
        has_tts=story.has_tts,
        created_at=story.created_at,
    )


@router.delete("/stories/{story_id}", status_code=204)
def delete_story(story_id: str, ctx: AppContext = Depends(get_context)):
    if not ctx.stories.delete(story_id):
        raise HTTPException(status_code=404, detail="Not found")
    return Response(status_code=204)
