from __future__ import annotations
import json
import logging
import re
import httpx
from typing import Any, Dict, Optional
from .settings import settings

logger = logging.getLogger("ielts.llm")


class LLMNotConfigured(RuntimeError):
	pass


def llm_configured() -> bool:
	return bool(settings.gemini_api_key or settings.openrouter_api_key)


def extract_json_object(text: str) -> Any:
	"""Parse JSON from a model reply that may wrap it in prose or a ```json block."""
	try:
		return json.loads(text)
	except ValueError:
		pass
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			return json.loads(code_block.group(1))
		except ValueError:
			pass
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last > first:
		try:
			return json.loads(text[first : last + 1])
		except ValueError:
			pass
	raise ValueError("model did not return valid JSON")


class GeminiClient:
	"""Gemini (Google AI Studio) text generation with an optional OpenRouter fallback."""

	def __init__(self, api_key: Optional[str] = None, *, model: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		self._openrouter_api_key = settings.openrouter_api_key
		if not self.api_key and not self._openrouter_api_key:
			raise LLMNotConfigured("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.base_url = f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
		self._client = httpx.AsyncClient(timeout=30, transport=transport)
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"X-Title": settings.openrouter_title,
		}

	async def generate(self, prompt: str) -> str:
		last_error: Optional[Exception] = None
		if self.api_key:
			payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
			try:
				r = await self._client.post(self.base_url, params={"key": self.api_key}, json=payload)
				r.raise_for_status()
				data = r.json()
				return data["candidates"][0]["content"]["parts"][0]["text"]
			except (httpx.HTTPError, KeyError, IndexError, ValueError) as err:
				logger.warning("Gemini call failed: %s", err)
				last_error = err
		if not self._openrouter_api_key:
			raise RuntimeError(f"Gemini call failed and no fallback configured ({last_error})")
		return await self._fallback_generate(prompt, last_error)

	async def _fallback_generate(self, prompt: str, primary_error: Optional[Exception]) -> str:
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": settings.openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			r = await self._client.post(settings.openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except (httpx.HTTPError, KeyError, IndexError, ValueError) as fallback_err:
			if primary_error is not None:
				raise RuntimeError(
					f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
				) from fallback_err
			raise RuntimeError(f"OpenRouter call failed ({fallback_err})") from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()
