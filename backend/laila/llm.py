"""Model proxy - forwards chat turns to a hosted completion API"""
import logging
from typing import Dict, List, Optional, Sequence
import openai
from openai import AsyncOpenAI
from laila.config import settings
from laila.models import ChatMessage
from laila.persona import HUMANIZE_PROMPT, SYSTEM_PROMPT

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Sorry, I couldn't generate a response."
EXHAUSTED_REPLY = "Sorry, I couldn't generate a response. Please try again in a moment."

FRIENDLY_ERRORS = {
    "rate_limit": "I'm a bit overwhelmed right now! Too many requests. Please wait a moment and try again.",
    "auth": "There's an issue with the API key. Please check LLM_API_KEY in your .env file.",
    "network": "I can't reach the server right now. Please check your internet connection.",
    "config": "Please set LLM_API_KEY in your .env file.",
    "generic": "Something went wrong. Please try again.",
}

class ModelProxyError(Exception):
    """Completion failure with a user-presentable message"""

    def __init__(self, kind: str, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(FRIENDLY_ERRORS[kind])

    @property
    def friendly_message(self) -> str:
        return FRIENDLY_ERRORS[self.kind]

def classify_model_error(error: BaseException) -> str:
    """Map a completion failure onto a friendly-message bucket"""
    if isinstance(error, ModelProxyError):
        return error.kind
    if isinstance(error, openai.RateLimitError):
        return "rate_limit"
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return "auth"
    if isinstance(error, openai.APIConnectionError):
        return "network"

    message = str(error).lower()
    if "429" in message or "rate" in message or "quota" in message:
        return "rate_limit"
    if "api key" in message or "401" in message or "403" in message:
        return "auth"
    if "network" in message or "connect" in message or "fetch" in message:
        return "network"
    return "generic"

def prepare_history(messages: Sequence[ChatMessage], limit: int) -> List[ChatMessage]:
    """Drop the local greeting and keep the most recent turns"""
    history = list(messages)
    if history and history[0].role == "assistant":
        history = history[1:]
    return history[-limit:] if limit > 0 else history

class ModelProxy:
    """Chat completion client with model fallback on rate limits"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        models: Optional[List[str]] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.models = models or list(settings.llm_models)
        self.history_limit = settings.history_limit
        self._client = client
        self._base_url = base_url or settings.llm_base_url

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ModelProxyError("config")
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self._base_url)
        return self._client

    async def _try_model(self, model: str, messages: List[Dict[str, str]]) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def _complete(self, turns: List[Dict[str, str]]) -> str:
        payload = [{"role": "system", "content": SYSTEM_PROMPT}] + turns

        for model in self.models:
            try:
                reply = await self._try_model(model, payload)
                return reply or EMPTY_REPLY
            except ModelProxyError:
                raise
            except Exception as e:
                kind = classify_model_error(e)
                if kind == "rate_limit":
                    logger.warning("Model %s is rate limited, trying next model", model)
                    continue
                logger.error("Completion failed on %s: %s", model, e)
                raise ModelProxyError(kind, str(e)) from e

        raise ModelProxyError("rate_limit", EXHAUSTED_REPLY)

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        """Send the conversation and return the raw assistant text"""
        history = prepare_history(messages, self.history_limit)
        return await self._complete([{"role": m.role, "content": m.content} for m in history])

    async def humanize(self, description: str, output: str) -> str:
        """Ask the model to phrase raw system output naturally"""
        prompt = HUMANIZE_PROMPT.format(description=description, output=output)
        return await self._complete([{"role": "user", "content": prompt}])
