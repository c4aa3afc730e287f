"""LLM clients: one HTTP client per supported backend.

Every backend matches the protocol:

    async def __call__(self, prompt: str, history: Sequence[Turn] = ()) -> str: ...

and returns the raw completion text, already lifted out of the backend's
response envelope. Nothing backend-specific leaks past this module.

Two implementations are provided:

    GeminiLLM  Google Gemini generateContent REST API. Safety filters are
               switched off per category and, when enabled, prior turns
               are replayed one by one through a GeminiChat session.
    GroqLLM    Groq's OpenAI-compatible chat completions API, with a
               system message that insists on bare JSON output.

Clients are built per call from the caller's API key by create_llm() and
never cached. dispatch() is the one-shot entry point used by the game
service. Tests patch httpx.AsyncClient.post instead of hitting the network.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from questlearn.config import Settings, get_settings
from questlearn.models import Provider, Turn

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, prompt: str, history: Sequence[Turn] = ()) -> str: ...


async def _post_json(
    client: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
    headers: dict[str, str],
    backend: str,
    timeout: float,
) -> dict[str, Any]:
    try:
        resp = await client.post(url, json=body, headers=headers)
        resp.raise_for_status()
    except httpx.ConnectError as e:
        raise LLMError(f"Cannot connect to {backend} API") from e
    except httpx.HTTPStatusError as e:
        raise LLMError(f"{backend} API returned HTTP {e.response.status_code}") from e
    except httpx.TimeoutException as e:
        raise LLMError(f"{backend} API timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise LLMError(f"{backend} API request failed: {type(e).__name__}") from e

    try:
        data = resp.json()
    except ValueError as e:
        raise LLMError(f"{backend} API returned a non-JSON body") from e
    if not isinstance(data, dict):
        raise LLMError(f"Unexpected response format from {backend} API")
    return data


# ---------------------------------------------------------------------------
# GeminiLLM (Google Gemini)
# ---------------------------------------------------------------------------

GEMINI_GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 1,
    "topP": 0.95,
    "topK": 40,
    "maxOutputTokens": 8192,
}

# Every harm category set to BLOCK_NONE.
GEMINI_SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
        "HARM_CATEGORY_HARASSMENT",
    )
]


def replay_message(turn: Turn) -> str:
    """Render one prior turn as a standalone chat message for replay."""
    return f"Story context: {turn.story}\nUser choice: {turn.choice.text}"


class GeminiLLM:
    """Async client for the Gemini generateContent endpoint.

    Args:
        api_key:        Caller-supplied key, sent as the x-goog-api-key header.
        model:          Model name, e.g. "gemini-2.0-flash-exp".
        base_url:       API root. Overridable for tests and proxies.
        timeout:        HTTP timeout in seconds. Defaults to 120.
        replay_history: Send each prior turn as its own chat message before
                        the prompt so the model accumulates context natively.
                        Costs one sequential round trip per turn.
    """

    name = "Gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash-exp",
        base_url: str = "https://generativelanguage.googleapis.com",
        timeout: float = 120.0,
        replay_history: bool = True,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._replay_history = replay_history

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1beta/models/{self._model}:generateContent"

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    def _build_body(self, contents: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "contents": contents,
            "generationConfig": dict(GEMINI_GENERATION_CONFIG),
            "safetySettings": [dict(s) for s in GEMINI_SAFETY_SETTINGS],
        }

    def _parse_response(self, data: dict[str, Any]) -> str:
        """Join the text parts of the first candidate."""
        candidates = data.get("candidates")
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            if reason:
                raise LLMError(f"Gemini blocked the prompt: {reason}")
            raise LLMError("Unexpected response format from Gemini API")
        if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
            raise LLMError("Unexpected response format from Gemini API")
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            reason = candidates[0].get("finishReason", "unknown")
            raise LLMError(f"Gemini returned no content (finishReason={reason})")
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

    async def generate(
        self, client: httpx.AsyncClient, contents: list[dict[str, Any]]
    ) -> str:
        """Send one generateContent request with the given conversation."""
        data = await _post_json(
            client, self.url, self._build_body(contents), self._headers(),
            self.name, self._timeout,
        )
        return self._parse_response(data)

    async def __call__(self, prompt: str, history: Sequence[Turn] = ()) -> str:
        replay = list(history) if self._replay_history else []
        logger.debug(
            "llm call backend=gemini model=%s prompt_len=%d replay_turns=%d",
            self._model, len(prompt), len(replay),
        )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            chat = GeminiChat(self, client)
            for turn in replay:
                await chat.send_message(replay_message(turn))
            text = await chat.send_message(prompt)
        logger.debug("llm response backend=gemini len=%d", len(text))
        return text


class GeminiChat:
    """Client-side chat session: accumulates contents across send_message calls.

    Gemini's REST API is stateless, so the session resends the whole
    conversation every time, just like the official SDK's ChatSession.
    """

    def __init__(self, llm: GeminiLLM, client: httpx.AsyncClient) -> None:
        self._llm = llm
        self._client = client
        self.contents: list[dict[str, Any]] = []

    async def send_message(self, text: str) -> str:
        user = {"role": "user", "parts": [{"text": text}]}
        reply = await self._llm.generate(self._client, self.contents + [user])
        self.contents.append(user)
        self.contents.append({"role": "model", "parts": [{"text": reply}]})
        return reply


# ---------------------------------------------------------------------------
# GroqLLM (OpenAI-compatible chat completions)
# ---------------------------------------------------------------------------

GROQ_SYSTEM_PROMPT = (
    "You are an educational story generator. Always respond with valid JSON "
    "that matches the required structure. Never include markdown formatting "
    "or code blocks in your response."
)

GROQ_GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.7,
    "max_tokens": 1024,
    "top_p": 0.9,
}


class GroqLLM:
    """Async client for Groq's /openai/v1/chat/completions endpoint.

    History is not replayed: the prompt already carries the recap.
    """

    name = "Groq"

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        base_url: str = "https://api.groq.com",
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def url(self) -> str:
        return f"{self._base_url}/openai/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def _build_body(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": GROQ_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            **GROQ_GENERATION_CONFIG,
        }

    def _parse_response(self, data: dict[str, Any]) -> str:
        choices = data.get("choices")
        if not choices or not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise LLMError("Unexpected response format from Groq API")
        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise LLMError("Unexpected response format from Groq API")
        content = message.get("content")
        return content if isinstance(content, str) else ""

    async def __call__(self, prompt: str, history: Sequence[Turn] = ()) -> str:
        logger.debug(
            "llm call backend=groq model=%s prompt_len=%d", self._model, len(prompt)
        )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            data = await _post_json(
                client, self.url, self._build_body(prompt), self._headers(),
                self.name, self._timeout,
            )
        text = self._parse_response(data)
        logger.debug("llm response backend=groq len=%d", len(text))
        return text


# ---------------------------------------------------------------------------
# Dispatch: provider id + key → fresh client → raw completion text
# ---------------------------------------------------------------------------

def create_llm(
    provider: Provider | str, api_key: str, settings: Settings | None = None
) -> LLM:
    """Construct a client for one call. Raises UnsupportedProviderError."""
    try:
        provider = Provider(provider)
    except ValueError:
        raise UnsupportedProviderError(f"Unsupported AI provider: {provider}") from None

    settings = settings or get_settings()
    if provider is Provider.GEMINI:
        return GeminiLLM(
            api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.llm_timeout,
            replay_history=settings.replay_history,
        )
    return GroqLLM(
        api_key,
        model=settings.groq_model,
        base_url=settings.groq_base_url,
        timeout=settings.llm_timeout,
    )


async def dispatch(
    provider: Provider | str,
    api_key: str,
    prompt: str,
    history: Sequence[Turn] = (),
    settings: Settings | None = None,
) -> str:
    """Send a prompt to the selected backend and return the raw completion."""
    llm = create_llm(provider, api_key, settings)
    logger.info("dispatching to %s (history=%d)", Provider(provider).value, len(history))
    return await llm(prompt, history)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when a backend cannot be reached or returns an error."""


class UnsupportedProviderError(ValueError):
    """Raised for a provider id outside the supported set."""
