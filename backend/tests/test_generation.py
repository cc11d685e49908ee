import base64
import json

import httpx
import pytest

from conftest import run
from storyreader.errors import ErrorKind, classify
from storyreader.gemini_client import GeminiAPIError, GeminiClient
from storyreader.generation import GeneratedStory, StoryGenerator, parse_definition, parse_story
from storyreader.settings import Settings


def text_response(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class Recorder:
    """httpx transport handler returning canned Gemini responses."""

    def __init__(self, body=None, status=200):
        self.body = body if body is not None else text_response("")
        self.status = status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


def make_client(settings, handler) -> GeminiClient:
    return GeminiClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


# ---- parsing ----

def test_parse_story_from_fenced_json():
    raw = '```json\n{"title": "Le chat", "paragraphs": ["Un chat dort.", " ", "Il se réveille."]}\n```'
    assert parse_story(raw) == GeneratedStory(title="Le chat", paragraphs=["Un chat dort.", "Il se réveille."])


def test_parse_story_without_title():
    assert parse_story('{"paragraphs": ["Un."]}').title == "Untitled"


def test_parse_story_plain_text_fallback_is_capped():
    raw = "\n\n".join(f"{n}. Paragraphe {n}." for n in range(1, 9))
    story = parse_story(raw)
    assert story.title == "Untitled"
    assert story.paragraphs == [f"Paragraphe {n}." for n in range(1, 7)]


@pytest.mark.parametrize("raw", ['{"title": "Vide", "paragraphs": []}', '{"title": "x"}', "   "])
def test_parse_story_without_paragraphs_fails(raw):
    with pytest.raises(RuntimeError) as info:
        parse_story(raw)
    assert classify(info.value).kind is ErrorKind.GENERATION_FAILED


def test_parse_definition_json():
    raw = 'Sure! {"translation": "tree", "definition": "A tall woody plant."}'
    assert parse_definition(raw) == ("tree", "A tall woody plant.")


def test_parse_definition_line_fallback():
    assert parse_definition("tree\nA tall woody plant.\nWith branches.") == ("tree", "A tall woody plant. With branches.")
    assert parse_definition("tree") == ("tree", "")
    assert parse_definition("") == ("", "")


# ---- client ----

def test_generate_joins_text_parts_and_sends_key(settings):
    handler = Recorder({"candidates": [{"content": {"parts": [{"text": "Bon"}, {"text": "jour"}]}}]})
    client = make_client(settings, handler)
    assert run(client.generate("salut")) == "Bonjour"
    request = handler.requests[0]
    assert request.url.params["key"] == "test-key"
    assert request.url.path.endswith(f"{settings.gemini_model}:generateContent")
    assert json.loads(request.content)["contents"][0]["parts"][0]["text"] == "salut"


def test_generate_content_raises_with_status(settings):
    client = make_client(settings, Recorder({"error": {"message": "Resource has been exhausted"}}, status=429))
    with pytest.raises(GeminiAPIError) as info:
        run(client.generate_content("x"))
    assert info.value.status_code == 429
    assert "Resource has been exhausted" in str(info.value)
    assert classify(info.value).kind is ErrorKind.RATE_LIMIT


def test_missing_api_key_fails_before_any_request(settings):
    handler = Recorder()
    client = make_client(settings.model_copy(update={"gemini_api_key": None}), handler)
    assert client.configured is False
    with pytest.raises(RuntimeError) as info:
        run(client.generate("x"))
    assert handler.requests == []
    assert classify(info.value).kind is ErrorKind.API_KEY_MISSING


def test_generate_image_decodes_inline_data(settings):
    body = {
        "candidates": [
            {"content": {"parts": [
                {"text": "Voici"},
                {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(b"jpeg-bytes").decode()}},
            ]}}
        ]
    }
    handler = Recorder(body)
    client = make_client(settings, handler)
    assert run(client.generate_image("dessine")) == ("image/jpeg", b"jpeg-bytes")
    assert handler.requests[0].url.path.endswith(f"{settings.gemini_image_model}:generateContent")


def test_generate_image_without_inline_data(settings):
    client = make_client(settings, Recorder(text_response("I cannot draw that.")))
    with pytest.raises(RuntimeError) as info:
        run(client.generate_image("dessine"))
    assert str(info.value) == "No image data returned from model"
    assert classify(info.value).kind is ErrorKind.GENERATION_FAILED


def test_vertex_provider_sends_key_in_header():
    settings = Settings(
        _env_file=None,
        gemini_api_key="vertex-key",
        gemini_provider="vertex",
        vertex_project="demo",
        vertex_region="europe-west1",
    )
    handler = Recorder(text_response("ok"))
    run(make_client(settings, handler).generate("x"))
    request = handler.requests[0]
    assert request.headers["x-goog-api-key"] == "vertex-key"
    assert "key" not in request.url.params
    assert request.url.host == "europe-west1-aiplatform.googleapis.com"
    assert "/projects/demo/locations/europe-west1/" in request.url.path


# ---- generator ----

def test_story_generator_parses_story(settings):
    handler = Recorder(text_response('{"title": "Le parc", "paragraphs": ["Un.", "Deux."]}'))
    generator = StoryGenerator(make_client(settings, handler), language="Spanish")
    story = run(generator.generate_story("un parc", "A2"))
    assert story == GeneratedStory(title="Le parc", paragraphs=["Un.", "Deux."])
    prompt = json.loads(handler.requests[0].content)["contents"][0]["parts"][0]["text"]
    assert "CEFR level A2" in prompt and "SPANISH" in prompt and "un parc" in prompt


def test_story_generator_image_payload(settings):
    body = {"candidates": [{"content": {"parts": [{"inlineData": {"data": base64.b64encode(b"png").decode()}}]}}]}
    generator = StoryGenerator(make_client(settings, Recorder(body)))
    payload = run(generator.generate_paragraph_image("Un chat.", "Un chat. Un chien.", "aquarelle"))
    assert (payload.mime_type, payload.data) == ("image/png", b"png")


def test_story_generator_define(settings):
    handler = Recorder(text_response('{"translation": "cat", "definition": "A small pet."}'))
    generator = StoryGenerator(make_client(settings, handler))
    assert run(generator.define("chat", "Le chat dort.")) == ("cat", "A small pet.")
    prompt = json.loads(handler.requests[0].content)["contents"][0]["parts"][0]["text"]
    assert "Target word: chat" in prompt and "Le chat dort." in prompt
