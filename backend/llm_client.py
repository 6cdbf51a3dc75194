"""LLM providers that turn source text into flashcard proposals.

Two wire formats are supported behind one ``FlashcardProvider`` interface:

- OpenAI-compatible chat completions over ``httpx`` (OpenRouter and OpenAI
  differ only in base URL, key and headers, captured by ``ProviderEndpoint``)
- Anthropic messages over the official async SDK

The active variant is chosen by ``settings.llm_provider``.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import anthropic
import httpx
from pydantic import BaseModel, ValidationError

from backend.config import Settings, settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a flashcard generation assistant. Generate clear, concise flashcards from the provided text.

INSTRUCTIONS:
- Create 5-15 flashcards based on the most important concepts
- Each flashcard should have a 'front' (question) and 'back' (answer)
- Questions should be specific and clear
- Answers should be concise but complete
- Focus on key concepts, definitions, processes, and relationships
- Return ONLY valid JSON in the exact format below, with no additional text or explanations

REQUIRED JSON FORMAT:
{
  "flashcards": [
    {
      "front": "Question text here",
      "back": "Answer text here"
    }
  ]
}"""

USER_PROMPT = "Generate flashcards from this text:\n\n{source_text}"


# --- Errors ---


class ProviderError(Exception):
    """Base class for flashcard provider failures."""


class InvalidArgument(ProviderError, ValueError):
    """Source text or model identifier was empty."""


class ProviderUnavailable(ProviderError):
    """The external service could not be reached or answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.timed_out = timed_out


class MalformedResponse(ProviderError):
    """The reply could not be parsed into at least one proposal."""


# --- Proposals ---


class FlashcardProposal(BaseModel):
    """A suggested front/back pair, not yet persisted."""

    front: str
    back: str


class _ProposalEnvelope(BaseModel):
    flashcards: list[FlashcardProposal]


@dataclass(frozen=True)
class ModelOption:
    """A model identifier offered to users."""

    value: str
    display_name: str
    description: str = ""
    is_recommended: bool = False


AVAILABLE_MODELS: list[ModelOption] = [
    ModelOption(
        value="openai/gpt-4o-mini",
        display_name="GPT-4o mini (recommended)",
        description="Fast, inexpensive OpenAI model, well suited to flashcards",
        is_recommended=True,
    ),
    ModelOption(
        value="openai/gpt-4o",
        display_name="GPT-4o",
        description="OpenAI's most capable general model",
    ),
    ModelOption(
        value="anthropic/claude-3-haiku",
        display_name="Claude 3 Haiku",
        description="Fast Anthropic Claude model",
    ),
    ModelOption(
        value="anthropic/claude-3-sonnet",
        display_name="Claude 3 Sonnet",
        description="Balanced Anthropic Claude model",
    ),
]


def model_display_name(model: str) -> str:
    """Return the catalogue display name for ``model``, or the identifier itself."""
    for option in AVAILABLE_MODELS:
        if option.value == model:
            return option.display_name
    return model


def parse_proposals(content: str) -> list[FlashcardProposal]:
    """Parse a model reply into proposals.

    Accepts bare JSON or JSON wrapped in a markdown code fence.

    Raises:
        MalformedResponse: If the content is not the expected JSON shape or
            holds no proposals.
    """
    text = content.strip()
    if text.startswith("```"):
        # Remove opening fence and optional language identifier
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

    try:
        envelope = _ProposalEnvelope.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.debug("Unparseable reply: %s", text[:500])
        raise MalformedResponse("Failed to parse AI response") from e

    if not envelope.flashcards:
        raise MalformedResponse("AI response did not contain valid flashcards")
    return envelope.flashcards


def _check_arguments(source_text: str, model: str) -> None:
    if not source_text or not source_text.strip():
        raise InvalidArgument("Source text cannot be empty")
    if not model or not model.strip():
        raise InvalidArgument("Model cannot be empty")


# --- Providers ---


class FlashcardProvider(ABC):
    """Turns source text into flashcard proposals with one outbound call."""

    name: str = "provider"

    @abstractmethod
    async def generate(self, source_text: str, model: str) -> list[FlashcardProposal]:
        """Generate proposals for ``source_text`` using ``model``.

        Raises:
            InvalidArgument: If either argument is empty.
            ProviderUnavailable: On network failure, timeout or non-2xx status.
            MalformedResponse: If the reply has no parseable proposals.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""


@dataclass(frozen=True)
class ProviderEndpoint:
    """Everything that distinguishes one chat-completions host from another."""

    name: str
    base_url: str
    api_key: str
    headers: dict[str, str] = field(default_factory=dict)


class ChatCompletionsProvider(FlashcardProvider):
    """OpenAI-compatible ``POST chat/completions`` client."""

    def __init__(
        self,
        endpoint: ProviderEndpoint,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.name = endpoint.name
        self._client = httpx.AsyncClient(
            base_url=endpoint.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def generate(self, source_text: str, model: str) -> list[FlashcardProposal]:
        _check_arguments(source_text, model)
        if not self.endpoint.api_key:
            logger.error("%s API key not found in configuration", self.name)
            raise ProviderUnavailable(f"{self.name} API key is not configured")

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": USER_PROMPT.format(source_text=source_text)},
            ],
        }
        headers = {"Authorization": f"Bearer {self.endpoint.api_key}", **self.endpoint.headers}

        logger.info("Sending flashcard generation request to %s with model %s", self.name, model)
        try:
            response = await self._client.post("chat/completions", json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("%s request timed out for model %s", self.name, model)
            raise ProviderUnavailable(f"{self.name} API request timed out", timed_out=True) from e
        except httpx.HTTPError as e:
            logger.error("HTTP error while calling %s with model %s: %s", self.name, model, e)
            raise ProviderUnavailable(f"{self.name} API request failed: {e}") from e

        if response.is_error:
            logger.error(
                "%s returned error status %d: %s", self.name, response.status_code, response.text
            )
            raise ProviderUnavailable(
                f"{self.name} API request failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        logger.debug("Received response from %s: %s", self.name, response.text)
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"{self.name} returned a non-JSON body") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise MalformedResponse(f"{self.name} API returned no choices")
        content = (choices[0].get("message") or {}).get("content")
        if not content or not content.strip():
            raise MalformedResponse(f"{self.name} API returned empty message content")

        proposals = parse_proposals(content)
        logger.info("Generated %d flashcards using model %s", len(proposals), model)
        return proposals

    async def aclose(self) -> None:
        await self._client.aclose()


class AnthropicProvider(FlashcardProvider):
    """Anthropic messages API client."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        max_tokens: int = 4096,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self.api_key = api_key
        self.max_tokens = max_tokens
        # The SDK has its own retry loop; retrying is the orchestrator's job
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key or None, timeout=timeout, max_retries=0
        )

    async def generate(self, source_text: str, model: str) -> list[FlashcardProposal]:
        _check_arguments(source_text, model)
        if not self.api_key:
            logger.error("Anthropic API key not found in configuration")
            raise ProviderUnavailable("anthropic API key is not configured")

        logger.info("Sending flashcard generation request to anthropic with model %s", model)
        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": USER_PROMPT.format(source_text=source_text)}],
            )
        except anthropic.APITimeoutError as e:
            logger.error("anthropic request timed out for model %s", model)
            raise ProviderUnavailable("anthropic API request timed out", timed_out=True) from e
        except anthropic.APIStatusError as e:
            logger.error("anthropic returned error status %d: %s", e.status_code, e.response.text)
            raise ProviderUnavailable(
                f"anthropic API request failed with status {e.status_code}",
                status_code=e.status_code,
                body=e.response.text,
            ) from e
        except anthropic.APIConnectionError as e:
            logger.error("Connection error while calling anthropic with model %s", model)
            raise ProviderUnavailable(f"anthropic API request failed: {e}") from e

        logger.debug(
            "Tokens used: %d in, %d out",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        text = "".join(block.text for block in response.content if block.type == "text")
        if not text.strip():
            raise MalformedResponse("anthropic API returned empty message content")

        proposals = parse_proposals(text)
        logger.info("Generated %d flashcards using model %s", len(proposals), model)
        return proposals

    async def aclose(self) -> None:
        await self.client.close()


def build_provider(config: Settings = settings) -> FlashcardProvider:
    """Create the provider selected by ``config.llm_provider``."""
    kind = config.llm_provider.lower()
    if kind == "openrouter":
        endpoint = ProviderEndpoint(
            name="openrouter",
            base_url=config.openrouter_base_url,
            api_key=config.openrouter_api_key,
            headers={"HTTP-Referer": config.openrouter_referer, "X-Title": config.app_name},
        )
        return ChatCompletionsProvider(endpoint, timeout=config.llm_timeout_seconds)
    if kind == "openai":
        endpoint = ProviderEndpoint(
            name="openai",
            base_url=config.openai_base_url,
            api_key=config.openai_api_key,
        )
        return ChatCompletionsProvider(endpoint, timeout=config.llm_timeout_seconds)
    if kind == "anthropic":
        return AnthropicProvider(
            api_key=config.anthropic_api_key,
            timeout=config.llm_timeout_seconds,
            max_tokens=config.llm_max_tokens,
        )
    raise ValueError(f"Unknown LLM provider: {config.llm_provider}")


# Lazy singleton so importing this module never opens a client.
_provider: FlashcardProvider | None = None


def get_provider() -> FlashcardProvider:
    """Return the shared provider, creating it on first call."""
    global _provider
    if _provider is None:
        _provider = build_provider()
    return _provider


async def close_provider() -> None:
    """Close the shared provider if one was created."""
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None
