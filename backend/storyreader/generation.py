"""
Generative collaborators built on Gemini.

- Story text: a short graded story as {title, paragraphs}
- Paragraph illustration: one inline image per paragraph
- Contextual definition: translation + short definition of a word in one sentence

Everything here talks to the model and parses its output; nothing here
retries or persists. Callers wrap these in errors.with_retry.
"""

from __future__ import annotations
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .gemini_client import GeminiClient
from .schemas import MediaPayload


DEFAULT_TITLE = "Untitled"
# Fallback paragraph split keeps at most this many
MAX_FALLBACK_PARAGRAPHS = 6


@dataclass
class GeneratedStory:
    title: str
    paragraphs: List[str]


def _extract_json_block(text: str) -> Dict[str, Any]:
    try:
        return json.loads(text)
    except Exception:
        pass
    # Try to locate the first JSON object in the text
    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        candidate = match.group(0)
        try:
            return json.loads(candidate)
        except Exception:
            pass
    raise ValueError("Failed to parse JSON from Gemini output")


def parse_story(raw: str) -> GeneratedStory:
    try:
        data = _extract_json_block(raw)
    except ValueError:
        data = None
    if isinstance(data, dict):
        paragraphs = data.get("paragraphs")
        cleaned = [str(p).strip() for p in paragraphs if str(p).strip()] if isinstance(paragraphs, list) else []
        if not cleaned:
            raise RuntimeError("Story generation failed: no paragraphs in model output")
        title = data.get("title")
        return GeneratedStory(title=title.strip() if isinstance(title, str) and title.strip() else DEFAULT_TITLE, paragraphs=cleaned)
    # Not JSON: split on blank lines and strip list numbering
    parts = [re.sub(r"^\s*\d+\.?\s*", "", p).strip() for p in re.split(r"\n\s*\n+", raw or "")]
    parts = [p for p in parts if p]
    if not parts:
        raise RuntimeError("Story generation failed: no paragraphs in model output")
    return GeneratedStory(title=DEFAULT_TITLE, paragraphs=parts[:MAX_FALLBACK_PARAGRAPHS])


def parse_definition(raw: str) -> Tuple[str, str]:
    text = (raw or "").strip()
    try:
        data = _extract_json_block(text)
        if isinstance(data, dict):
            translation = str(data.get("translation") or "").strip()
            definition = str(data.get("definition") or "").strip()
            if translation or definition:
                return translation, definition
    except ValueError:
        pass
    # Fallback: first line is the translation, the rest is the definition
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) >= 2:
        return lines[0], " ".join(lines[1:])
    if len(lines) == 1:
        return lines[0], ""
    return "", ""


class StoryGenerator:
    def __init__(self, client: GeminiClient, *, language: str = "French") -> None:
        self.client = client
        self.language = language

    @property
    def configured(self) -> bool:
        return self.client.configured

    async def generate_story(self, prompt: str, level: str) -> GeneratedStory:
        instructions = f"""
You are an expert language tutor and author.
Write a short story STRICTLY at CEFR level {level}, in {self.language.upper()} ONLY. Do not use vocabulary or grammar above level {level}.
Return 4 to 7 very short paragraphs (2 to 4 simple sentences each). Each paragraph must express one distinct idea or step of the story.
Output ONLY compact JSON in the form {{ "title": string, "paragraphs": string[] }} with no extra text.
""".strip()
        raw = await self.client.generate(f"{instructions}\n\nThe learner's topic: {prompt}")
        return parse_story(raw)

    async def generate_paragraph_image(self, paragraph: str, full_story: str, image_style: Optional[str] = None) -> MediaPayload:
        style_line = f"- Apply this visual style preference: {image_style}.\n" if image_style else ""
        prompt = (
            "Create a single illustrative image for the following paragraph of a story.\n"
            "- Use the paragraph as the primary visual guidance.\n"
            "- You may use the overall story context for consistency, but DO NOT include spoilers for paragraphs not yet read.\n"
            "- Keep the composition clear and focused on this paragraph's main idea.\n"
            f"{style_line}\n"
            f"Paragraph ({self.language} text):\n{paragraph}\n\n"
            f"Story context (for consistency only, avoid spoilers):\n{full_story}"
        )
        mime_type, data = await self.client.generate_image(prompt)
        return MediaPayload(mime_type=mime_type, data=data)

    async def define(self, word: str, sentence: str) -> Tuple[str, str]:
        prompt = f"""
For the target word used in this specific {self.language} sentence, return a very brief English translation of the word in context and a concise English definition (10-25 words). Output ONLY compact JSON: {{ "translation": string, "definition": string }}.

Target word: {word}
{self.language} sentence: {sentence}
""".strip()
        raw = await self.client.generate(prompt)
        return parse_definition(raw)

    async def aclose(self) -> None:
        await self.client.aclose()
