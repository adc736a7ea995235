# flightsim/llm/client.py
"""
LLM Client - unified text generation over Anthropic and OpenAI.

The engine only needs ``generate(messages) -> str``. Anything exposing that
method (e.g. a canned test double) can stand in for LLMClient.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from ..logging import get_logger
from ..settings import settings

logger = get_logger(__name__)

VALID_ROLES = ("system", "user", "assistant")

# Retry backoff bounds (seconds)
RETRY_WAIT_MIN = 1
RETRY_WAIT_MAX = 10


class TextGenerator(Protocol):
    """Anything that turns a chat transcript into a single string."""

    def generate(self, messages: List[Dict[str, str]]) -> str:
        ...


@dataclass
class LLMResponse:
    """Response from LLM."""
    content: str
    raw_response: Any
    model: str
    usage: Dict[str, int]


def split_system(messages: List[Dict[str, str]]) -> Tuple[str, List[Dict[str, str]]]:
    """Separate system messages from the conversation turns."""
    system_parts = []
    conversation = []
    for message in messages:
        role = message.get("role")
        if role not in VALID_ROLES:
            raise ValueError(f"Invalid message role: {role!r}")
        if role == "system":
            system_parts.append(message["content"])
        else:
            conversation.append({"role": role, "content": message["content"]})
    if not conversation:
        raise ValueError("At least one user message is required")
    return "\n\n".join(system_parts), conversation


class LLMClient:
    """
    Text generation client supporting Anthropic and OpenAI.

    Usage:
        client = LLMClient()
        text = client.generate([
            {"role": "system", "content": "You are an air traffic controller..."},
            {"role": "user", "content": "Clear N123AB for takeoff"},
        ])
    """

    def __init__(self, provider: Optional[str] = None):
        self.provider = provider or settings.llm_provider
        self._client = None
        self._transient_errors: Tuple[type, ...] = ()
        self._init_client()

    def _init_client(self):
        """Initialize the provider SDK client."""
        if self.provider == "anthropic":
            if not settings.anthropic_api_key:
                raise ValueError("ANTHROPIC_API_KEY not set")
            import anthropic
            self._client = anthropic.Anthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,  # tenacity owns retries
            )
            self.model = settings.anthropic_model
            self._transient_errors = (
                anthropic.APIConnectionError,
                anthropic.RateLimitError,
                anthropic.InternalServerError,
            )
        elif self.provider == "openai":
            if not settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY not set")
            import openai
            self._client = openai.OpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            )
            self.model = settings.openai_model
            self._transient_errors = (
                openai.APIConnectionError,
                openai.RateLimitError,
                openai.InternalServerError,
            )
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider}")

    def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate a single text response for a chat transcript.

        Args:
            messages: Dicts with role (system/user/assistant) and content
            temperature: Defaults to settings.llm_temperature
            max_tokens: Defaults to settings.llm_max_tokens

        Returns:
            Response text (may or may not contain JSON)
        """
        system, conversation = split_system(messages)
        response = self.complete(
            system=system,
            messages=conversation,
            temperature=settings.llm_temperature if temperature is None else temperature,
            max_tokens=max_tokens or settings.llm_max_tokens,
        )
        return response.content

    def complete(
        self,
        system: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Run one completion, retrying transient provider failures."""
        retryer = Retrying(
            stop=stop_after_attempt(settings.llm_max_attempts),
            wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
            retry=retry_if_exception_type(self._transient_errors),
            reraise=True,
        )
        if self.provider == "anthropic":
            response = retryer(self._complete_anthropic, system, messages, temperature, max_tokens)
        else:
            response = retryer(self._complete_openai, system, messages, temperature, max_tokens)

        logger.debug(
            "llm_completion",
            provider=self.provider,
            model=response.model,
            **response.usage,
        )
        return response

    def _complete_anthropic(
        self,
        system: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Complete using Anthropic Claude."""
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system

        response = self._client.messages.create(**kwargs)
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

        return LLMResponse(
            content=text,
            raw_response=response,
            model=self.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
        )

    def _complete_openai(
        self,
        system: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Complete using OpenAI chat completions."""
        all_messages = messages
        if system:
            all_messages = [{"role": "system", "content": system}] + messages

        response = self._client.chat.completions.create(
            model=self.model,
            messages=all_messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        return LLMResponse(
            content=response.choices[0].message.content or "",
            raw_response=response,
            model=self.model,
            usage={
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        )


# Global client instance
_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create global LLM client (also the FastAPI dependency)."""
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
