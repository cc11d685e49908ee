from __future__ import annotations
import base64
import httpx
from typing import Any, Dict, List, Optional, Tuple
from .settings import Settings


class GeminiAPIError(RuntimeError):
	def __init__(self, status_code: int, message: str) -> None:
		super().__init__(f"Gemini API error {status_code}: {message}")
		self.status_code = status_code


class GeminiClient:
	def __init__(self, settings: Settings, *, http_client: Optional[httpx.AsyncClient] = None) -> None:
		self.api_key = settings.gemini_api_key
		self.model = settings.gemini_model
		self.image_model = settings.gemini_image_model
		self.provider = settings.gemini_provider
		self._region = settings.vertex_region
		self._project = settings.vertex_project or "placeholder-project"
		# API key goes in the query string for AI Studio, in a header for Vertex
		self._auth_in_query = self.provider != "vertex"
		self._client = http_client or httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)

	@property
	def configured(self) -> bool:
		return bool(self.api_key)

	def _url(self, model: str) -> str:
		if self.provider == "vertex":
			region = self._region
			# Vertex AI Generative REST endpoint (API key via header)
			return (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{self._project}/locations/{region}/publishers/google/models/{model}:generateContent"
			)
		# Google AI Studio (Generative Language API)
		return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

	async def generate(self, prompt: str, *, model: Optional[str] = None) -> str:
		data = await self.generate_content(prompt, model=model)
		try:
			parts = data["candidates"][0]["content"]["parts"]
		except (KeyError, IndexError, TypeError):
			raise ValueError(f"Unexpected Gemini response shape: {str(data)[:200]}")
		return "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))

	async def generate_image(self, prompt: str, *, model: Optional[str] = None) -> Tuple[str, bytes]:
		data = await self.generate_content(prompt, model=model or self.image_model)
		# Walk candidates to find inline image data
		candidates: List[Dict[str, Any]] = data.get("candidates") or []
		for candidate in candidates:
			parts = (candidate.get("content") or {}).get("parts") or []
			for part in parts:
				inline = part.get("inlineData") or part.get("inline_data")
				if inline and inline.get("data"):
					mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
					return mime_type, base64.b64decode(inline["data"])
		raise RuntimeError("No image data returned from model")

	async def generate_content(self, prompt: str, *, model: Optional[str] = None) -> Dict[str, Any]:
		if not self.api_key:
			raise RuntimeError("GEMINI_API_KEY is not configured")
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		r = await self._client.post(self._url(model or self.model), params=params, headers=headers, json=payload)
		if r.status_code >= 400:
			raise GeminiAPIError(r.status_code, _error_message(r))
		return r.json()

	async def aclose(self) -> None:
		await self._client.aclose()


def _error_message(r: httpx.Response) -> str:
	try:
		data = r.json()
		return str(data["error"]["message"])
	except Exception:
		return r.text[:500]
