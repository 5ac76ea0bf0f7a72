from __future__ import annotations
import logging
from typing import Any, Optional, Sequence

import httpx

from .base import Translator
from dualsub.contracts import TranslationContextPair
from dualsub.errors import AuthMissing, InvalidResponse, NetworkError, TranslationTimeout

logger = logging.getLogger(__name__)

GENERATE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

QUICK_PROMPT = (
    "You are a fast real-time {source} to {target} translator for streaming ASR text.\n"
    "Preserve the original {source} structure and order as much as possible.\n"
    "Do not reorganize clause order for natural {target}.\n"
    "Do not summarize, omit, or add information.\n"
    "If the source sentence is incomplete, still translate literally in source order.\n"
    "Output only the {target} translation."
)

REFINED_PROMPT = (
    "You are an expert {source} to {target} translator for live conference interpretation. "
    "Translate the given {source} sentence to natural {target}, considering the previous "
    "conversation context. Output only the {target} translation."
)


def thinking_config(model: str) -> dict[str, Any]:
    # gemini-3 models reject a zero budget; the lowest level is allowed.
    if model.startswith("gemini-3"):
        return {"thinkingLevel": "LOW"}
    return {"thinkingBudget": 0}


def render_context_message(
    text: str,
    context: Sequence[TranslationContextPair],
    *,
    source_tag: str = "EN",
    target_tag: str = "KO",
) -> str:
    if not context:
        return text
    lines = ["Previous conversation context:"]
    for pair in context:
        lines.append(f"{source_tag}: {pair.source_text}")
        lines.append(f"{target_tag}: {pair.translation_text}")
    return "\n".join(lines) + f"\n\nTranslate this sentence:\n{text}"


class GeminiTranslator(Translator):
    """
    Gemini ``generateContent`` over REST.

    ``mode="quick"`` asks for a literal, source-ordered translation and never
    sends context; ``mode="refined"`` sends the recent confirmed pairs.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str,
        mode: str = "refined",
        source_lang: str = "en",
        target_lang: str = "ko",
        source_name: str = "English",
        target_name: str = "Korean",
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        url: str = GENERATE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if mode not in ("quick", "refined"):
            raise ValueError(f"Unknown Gemini translation mode: {mode}")
        self.api_key = api_key
        self.model = model
        self.mode = mode
        self.source_tag = source_lang.upper()
        self.target_tag = target_lang.upper()
        template = QUICK_PROMPT if mode == "quick" else REFINED_PROMPT
        self.system_prompt = template.format(source=source_name, target=target_name)
        if temperature is None:
            temperature = 0.0 if mode == "quick" else 0.3
        if max_output_tokens is None:
            max_output_tokens = 256 if mode == "quick" else 1024
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.url = url
        self._client = httpx.AsyncClient(transport=transport)

    @property
    def name(self) -> str:
        return f"gemini:{self.model}"

    def build_request(self, text: str, context: Sequence[TranslationContextPair]) -> dict[str, Any]:
        message = text
        if self.mode == "refined":
            message = render_context_message(
                text, context, source_tag=self.source_tag, target_tag=self.target_tag
            )
        return {
            "contents": [{"role": "user", "parts": [{"text": message}]}],
            "system_instruction": {"parts": [{"text": self.system_prompt}]},
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
                "thinkingConfig": thinking_config(self.model),
            },
        }

    async def translate(
        self,
        text: str,
        context: Sequence[TranslationContextPair] = (),
        timeout: float = 5.0,
    ) -> str:
        if not self.api_key:
            raise AuthMissing("Gemini API key is not configured")
        try:
            resp = await self._client.post(
                self.url.format(model=self.model),
                headers={"x-goog-api-key": self.api_key},
                json=self.build_request(text, context),
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise TranslationTimeout(f"Gemini request exceeded {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Gemini request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthMissing(f"Gemini rejected the API key (HTTP {resp.status_code})")
        if resp.status_code >= 400:
            raise NetworkError(f"Gemini HTTP {resp.status_code}: {_error_message(resp)}")
        return _extract_text(resp)

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text[:200]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return resp.text[:200]


def _extract_text(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
        parts = payload["candidates"][0]["content"]["parts"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise InvalidResponse("Gemini response had no candidate text") from exc
    text = "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict)).strip()
    if not text:
        raise InvalidResponse("Gemini returned an empty translation")
    return text
