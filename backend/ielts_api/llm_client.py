from __future__ import annotations
import httpx
from typing import Any, Dict, Optional
from .settings import settings


class LLMError(RuntimeError):
	"""The language-model provider could not produce a usable answer."""


class LLMClient:
	def __init__(
		self,
		provider: Optional[str] = None,
		*,
		api_key: Optional[str] = None,
		model: Optional[str] = None,
		base_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.provider = (provider or settings.llm_provider).lower()
		if self.provider == "gemini":
			self.api_key = api_key or settings.gemini_api_key
			self.model = model or settings.gemini_model
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
		elif self.provider == "openai":
			self.api_key = api_key or settings.openai_api_key
			self.model = model or settings.openai_model
			self.base_url = base_url or settings.openai_base_url
		else:
			raise ValueError(f"Unsupported LLM provider: {self.provider}")
		if not self.api_key:
			raise LLMError(f"API key for provider '{self.provider}' is not configured")
		self._client = httpx.AsyncClient(timeout=settings.llm_timeout_seconds, transport=transport)
		self.last_usage: Dict[str, int] = {}

	async def generate_json(self, system_prompt: str, user_message: str, *, temperature: float = 0.3, max_tokens: int = 2000) -> str:
		"""Send one system + user exchange and return the raw JSON text of the reply."""
		if self.provider == "gemini":
			return await self._generate_gemini(system_prompt, user_message, temperature, max_tokens)
		return await self._generate_openai(system_prompt, user_message, temperature, max_tokens)

	async def _post(self, *, params: Dict[str, Any], headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			raise LLMError(f"{self.provider} returned HTTP {http_err.response.status_code}") from http_err
		except httpx.RequestError as net_err:
			raise LLMError(f"{self.provider} request failed: {net_err}") from net_err
		try:
			return r.json()
		except ValueError as err:
			raise LLMError(f"Unexpected {self.provider} response: {r.text[:200]}") from err

	async def _generate_openai(self, system_prompt: str, user_message: str, temperature: float, max_tokens: int) -> str:
		payload: Dict[str, Any] = {
			"model": self.model,
			"messages": [
				{"role": "system", "content": system_prompt},
				{"role": "user", "content": user_message},
			],
			"response_format": {"type": "json_object"},
			"temperature": temperature,
			"max_tokens": max_tokens,
		}
		headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
		data = await self._post(params={}, headers=headers, payload=payload)
		try:
			text = data["choices"][0]["message"]["content"]
		except (KeyError, IndexError, TypeError) as err:
			raise LLMError(f"Unexpected openai response: {data}") from err
		usage = data.get("usage") or {}
		self.last_usage = {
			"prompt_tokens": int(usage.get("prompt_tokens") or 0),
			"completion_tokens": int(usage.get("completion_tokens") or 0),
			"total_tokens": int(usage.get("total_tokens") or 0),
		}
		return text

	async def _generate_gemini(self, system_prompt: str, user_message: str, temperature: float, max_tokens: int) -> str:
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system_prompt}]},
			"contents": [{"role": "user", "parts": [{"text": user_message}]}],
			"generationConfig": {
				"responseMimeType": "application/json",
				"temperature": temperature,
				"maxOutputTokens": max_tokens,
			},
		}
		data = await self._post(params={"key": self.api_key}, headers={}, payload=payload)
		try:
			text = data["candidates"][0]["content"]["parts"][0]["text"]
		except (KeyError, IndexError, TypeError) as err:
			raise LLMError(f"Unexpected gemini response: {data}") from err
		usage = data.get("usageMetadata") or {}
		self.last_usage = {
			"prompt_tokens": int(usage.get("promptTokenCount") or 0),
			"completion_tokens": int(usage.get("candidatesTokenCount") or 0),
			"total_tokens": int(usage.get("totalTokenCount") or 0),
		}
		return text

	async def aclose(self) -> None:
		await self._client.aclose()
