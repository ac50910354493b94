"""
LLM Factory for Branchchat.

This module provides a factory for creating streaming LLM clients that follow the
OpenAI Chat Completions API pattern. It abstracts away the specific provider
implementations so the chat relay only ever sees a ``CompletionStream``.
"""

from typing import Dict, List, Optional, Union, Literal
import logging
from enum import Enum
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from pydantic import BaseModel, Field

from branchchat.core.config import settings
from branchchat.core.errors import ChatError
from branchchat.services.llm.completion import (
    CompletionStream,
    chunk_payload,
    json_frame,
    new_completion_id,
    openai_event_delta,
    split_sse_events,
)

logger = logging.getLogger(__name__)

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "openai/gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "gemini": "gemini-2.0-flash",
}

# ----- Type Definitions -----

class Role(str, Enum):
    """Message roles in the OpenAI Chat API format."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

class ChatMessage(BaseModel):
    """Message in the OpenAI Chat API format."""
    role: Role
    content: str

class CompletionOptions(BaseModel):
    """Common options for completion requests across providers."""
    temperature: float = Field(default=0.8, ge=0, le=2)
    max_tokens: Optional[int] = None
    top_p: float = Field(default=1.0, ge=0, le=1)
    stop: Optional[Union[str, List[str]]] = None

    @classmethod
    def from_settings(cls) -> "CompletionOptions":
        return cls(temperature=settings.LLM_TEMPERATURE, max_tokens=settings.LLM_MAX_TOKENS)

# ----- LLM Provider Interfaces -----

class LLMProvider(ABC):
    """Abstract base class for all LLM providers."""

    model_name: str

    @abstractmethod
    async def stream(
        self,
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None
    ) -> CompletionStream:
        """
        Open a streaming completion with the provider.

        The request is sent before this returns, so connection and
        authentication failures surface here rather than mid-stream.

        Args:
            messages: Ordered conversation history, system prompt first
            options: Completion options

        Returns:
            CompletionStream over the provider's chunks

        Raises:
            ChatError: UPSTREAM_GENERATION_FAILURE if the stream cannot be opened
        """
        pass

# ----- Provider Implementations -----

class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions (OpenRouter by default)."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, base_url: Optional[str] = None):
        """
        Initialize the OpenAI provider.

        Args:
            api_key: API key (defaults to settings)
            model: Model to use
            base_url: API base URL (defaults to settings, OpenRouter)
        """
        from openai import AsyncOpenAI

        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model_name = model or DEFAULT_MODELS["openai"]
        self.client = AsyncOpenAI(api_key=self.api_key, base_url=base_url or settings.OPENAI_BASE_URL)
        logger.info(f"Initialized OpenAIProvider with model: {self.model_name}")

    async def stream(
        self,
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None
    ) -> CompletionStream:
        if options is None:
            options = CompletionOptions.from_settings()

        kwargs = {}
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.stop:
            kwargs["stop"] = options.stop

        stack = AsyncExitStack()
        try:
            response = await stack.enter_async_context(
                self.client.chat.completions.with_streaming_response.create(
                    model=self.model_name,
                    messages=[{"role": msg.role.value, "content": msg.content} for msg in messages],
                    temperature=options.temperature,
                    top_p=options.top_p,
                    stream=True,
                    **kwargs,
                )
            )
        except Exception as e:
            await stack.aclose()
            logger.error(f"Error opening OpenAI stream: {e}", exc_info=True)
            raise ChatError.upstream_failure("Failed to generate response") from e

        async def frames():
            # Upstream events are already in the client format; forward their raw bytes
            try:
                async for event in split_sse_events(response.iter_bytes()):
                    yield event, openai_event_delta(event)
            finally:
                await stack.aclose()

        return CompletionStream(frames())

class AnthropicProvider(LLMProvider):
    """Anthropic Claude implementation."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Initialize the Anthropic provider.

        Args:
            api_key: Anthropic API key (defaults to settings)
            model: Anthropic model to use
        """
        import anthropic

        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model_name = model or DEFAULT_MODELS["anthropic"]
        self.client = anthropic.AsyncAnthropic(api_key=self.api_key)
        logger.info(f"Initialized AnthropicProvider with model: {self.model_name}")

    async def stream(
        self,
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None
    ) -> CompletionStream:
        if options is None:
            options = CompletionOptions.from_settings()

        # Anthropic has a separate system parameter
        system_content = "\n".join(msg.content for msg in messages if msg.role == Role.SYSTEM)
        anthropic_messages = [
            {"role": msg.role.value, "content": msg.content}
            for msg in messages
            if msg.role != Role.SYSTEM
        ]

        kwargs = {}
        if system_content:
            kwargs["system"] = system_content
        if options.stop:
            kwargs["stop_sequences"] = options.stop if isinstance(options.stop, list) else [options.stop]

        try:
            response = await self.client.messages.create(
                model=self.model_name,
                messages=anthropic_messages,
                temperature=min(options.temperature, 1.0),
                max_tokens=options.max_tokens or 1024,
                stream=True,
                **kwargs,
            )
        except Exception as e:
            logger.error(f"Error opening Anthropic stream: {e}", exc_info=True)
            raise ChatError.upstream_failure("Failed to generate response") from e

        completion_id = new_completion_id()
        model_name = self.model_name

        async def frames():
            async with response:
                async for event in response:
                    if event.type == "content_block_delta" and event.delta.type == "text_delta":
                        text = event.delta.text
                        yield json_frame(chunk_payload(completion_id, model_name, content=text)), text
                    elif event.type == "message_delta" and event.delta.stop_reason:
                        yield json_frame(chunk_payload(completion_id, model_name, finish_reason="stop")), ""

        return CompletionStream(frames())

class GeminiProvider(LLMProvider):
    """Google Gemini implementation."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Initialize the Gemini provider.

        Args:
            api_key: Gemini API key (defaults to settings)
            model: Gemini model to use
        """
        import google.generativeai as genai

        self.api_key = api_key or settings.GEMINI_API_KEY
        genai.configure(api_key=self.api_key)
        self.model_name = model or DEFAULT_MODELS["gemini"]
        self.model = genai.GenerativeModel(self.model_name)
        logger.info(f"Initialized GeminiProvider with model: {self.model_name}")

    @staticmethod
    def to_contents(messages: List[ChatMessage]) -> List[dict]:
        """Convert OpenAI-style messages to Gemini contents"""
        contents = []
        for msg in messages:
            # Gemini only supports user and model roles directly
            if msg.role == Role.USER:
                contents.append({"role": "user", "parts": [msg.content]})
            elif msg.role == Role.ASSISTANT:
                contents.append({"role": "model", "parts": [msg.content]})

        # System messages are prepended to the first user message
        system_messages = [msg.content for msg in messages if msg.role == Role.SYSTEM]
        if system_messages and contents and contents[0]["role"] == "user":
            system_content = "\n".join(system_messages)
            contents[0]["parts"][0] = f"{system_content}\n\n{contents[0]['parts'][0]}"
        return contents

    async def stream(
        self,
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None
    ) -> CompletionStream:
        if options is None:
            options = CompletionOptions.from_settings()

        generation_config = {
            "temperature": options.temperature,
            "top_p": options.top_p,
            "max_output_tokens": options.max_tokens,
            "stop_sequences": options.stop if isinstance(options.stop, list) else [options.stop] if options.stop else None
        }
        generation_config = {k: v for k, v in generation_config.items() if v is not None}

        try:
            response = await self.model.generate_content_async(
                self.to_contents(messages),
                generation_config=generation_config,
                stream=True,
            )
        except Exception as e:
            logger.error(f"Error opening Gemini stream: {e}", exc_info=True)
            raise ChatError.upstream_failure("Failed to generate response") from e

        completion_id = new_completion_id()
        model_name = self.model_name

        async def frames():
            async for chunk in response:
                text = chunk.text
                yield json_frame(chunk_payload(completion_id, model_name, content=text)), text

        return CompletionStream(frames())

# ----- Factory Implementation -----

class LLMFactory:
    """Factory for creating LLM provider instances."""

    @staticmethod
    def create(
        provider: Optional[Literal["openai", "gemini", "anthropic"]] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None
    ) -> LLMProvider:
        """
        Create an LLM provider instance.

        Args:
            provider: The LLM provider to use (defaults to settings.LLM_PROVIDER)
            model: The specific model to use (defaults to settings.LLM_MODEL, then the provider default)
            api_key: API key for the provider (defaults to settings)

        Returns:
            An instance of the requested LLM provider
        """
        provider = provider or settings.LLM_PROVIDER
        model = model or settings.LLM_MODEL or None

        if provider == "openai":
            return OpenAIProvider(api_key=api_key, model=model)
        elif provider == "gemini":
            return GeminiProvider(api_key=api_key, model=model)
        elif provider == "anthropic":
            return AnthropicProvider(api_key=api_key, model=model)
        else:
            raise ValueError(f"Unsupported LLM provider: {provider}")
