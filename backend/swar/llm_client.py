from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, Optional
from .errors import TransportError, UPSTREAM_ERROR
from .settings import settings

logger = logging.getLogger(__name__)


class GatewayClient:
	"""OpenAI-compatible chat completions client with JSON-mode output.

	Every failure surfaces as a TransportError carrying its classified kind.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.ai_gateway_api_key
		self.base_url = base_url or settings.ai_gateway_url
		self.model = model or settings.ai_model
		self._headers = {
			"Authorization": f"Bearer {self.api_key}" if self.api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.ai_referer,
			"X-Title": settings.ai_title,
		}
		self._client = httpx.AsyncClient(timeout=timeout or settings.ai_timeout_seconds, transport=transport)

	async def complete_json(self, system_prompt: str, user_prompt: str) -> str:
		if not self.api_key:
			raise TransportError(UPSTREAM_ERROR, "AI_GATEWAY_API_KEY is not configured")
		headers = {k: v for k, v in self._headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self.model,
			"messages": [
				{"role": "system", "content": system_prompt},
				{"role": "user", "content": user_prompt},
			],
			"response_format": {"type": "json_object"},
		}
		try:
			r = await self._client.post(self.base_url, headers=headers, json=payload)
		except httpx.RequestError as net_err:
			raise TransportError(UPSTREAM_ERROR, f"AI gateway unreachable: {net_err}") from net_err
		if r.status_code < 200 or r.status_code >= 300:
			logger.error("AI gateway error: %s %s", r.status_code, r.text[:500])
			raise TransportError.from_status(r.status_code, r.text)
		try:
			data = r.json()
			content = data["choices"][0]["message"]["content"]
		except Exception as err:
			raise TransportError(UPSTREAM_ERROR, f"Unexpected AI gateway response: {r.text[:200]}") from err
		if content is None:
			raise TransportError(UPSTREAM_ERROR, "AI gateway returned no content")
		return str(content)

	async def aclose(self) -> None:
		await self._client.aclose()
