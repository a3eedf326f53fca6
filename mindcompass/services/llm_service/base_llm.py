"""Text-generation providers behind one async interface.

The triage classifier only needs one capability from a provider: send a
prompt, get back text (JSON text when ``json_mode`` is set). Contract
validation lives in the classifier, not here.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 10000

JSON_ONLY_INSTRUCTION = "Respond with a single JSON object only."


class LLMProvider(Enum):
    OPENAI = "openai"
    HUGGINGFACE = "huggingface"


_CREDENTIAL_ENV = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.HUGGINGFACE: "HUGGINGFACE_TOKEN",
}


@dataclass
class LLMConfig:
    """Provider, model and sampling settings for the classifier call."""
    provider: LLMProvider
    model_name: str
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    max_tokens: int = 256
    temperature: float = 0.4
    top_p: float = 0.9
    timeout_seconds: int = 15

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Create configuration from environment variables.

        Environment variables:
            LLM_PROVIDER: openai | huggingface (default openai)
            LLM_MODEL_NAME: Model identifier (default gpt-4o-mini)
            LLM_ENDPOINT: Inference endpoint (HuggingFace only)
            OPENAI_API_KEY / HUGGINGFACE_TOKEN: Credentials for the chosen provider
            LLM_TIMEOUT_SECONDS: Request timeout (default 15)

        Raises:
            ValueError: Unknown provider
        """
        provider = LLMProvider(os.getenv("LLM_PROVIDER", "openai").lower())
        return cls(
            provider=provider,
            model_name=os.getenv("LLM_MODEL_NAME", "gpt-4o-mini"),
            endpoint=os.getenv("LLM_ENDPOINT"),
            api_key=os.getenv(_CREDENTIAL_ENV[provider]),
            timeout_seconds=int(os.getenv("LLM_TIMEOUT_SECONDS", "15")),
        )


@dataclass
class LLMResponse:
    text: str
    model: str
    provider: str
    tokens_used: Optional[int] = None
    latency_ms: Optional[float] = None
    metadata: Optional[Dict] = None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class BaseLLM(ABC):
    """One provider, one model."""

    def __init__(self, config: LLMConfig):
        self.config = config
        logger.info(
            "LLM_INITIALIZED",
            extra={"provider": config.provider.value, "model": config.model_name},
        )

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate text for a prompt.

        Args:
            prompt: User prompt
            system_prompt: Instructions sent ahead of the prompt
            json_mode: Ask the provider for a single JSON object

        Raises:
            ValueError: If the prompt fails ``validate_prompt``
            Exception: Provider/transport errors propagate to the caller
        """

    def validate_prompt(self, prompt: str) -> bool:
        """Reject empty prompts and prompts over MAX_PROMPT_CHARS."""
        if not prompt or not prompt.strip():
            logger.warning("LLM_PROMPT_EMPTY")
            return False

        if len(prompt) > MAX_PROMPT_CHARS:
            logger.warning("LLM_PROMPT_TOO_LONG", extra={"length": len(prompt)})
            return False

        return True

    def _log_generation(self, latency_ms: float, tokens_used: Optional[int] = None) -> None:
        logger.info(
            "LLM_GENERATION_SUCCEEDED",
            extra={
                "provider": self.config.provider.value,
                "model": self.config.model_name,
                "latency_ms": latency_ms,
                "tokens_used": tokens_used,
            },
        )

    def _log_failure(self, error: Exception) -> None:
        logger.error(
            "LLM_GENERATION_FAILED",
            extra={
                "provider": self.config.provider.value,
                "model": self.config.model_name,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class HuggingFaceLLM(BaseLLM):
    """Hosted text-generation endpoint (HuggingFace Inference API)."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)

        if not config.endpoint:
            raise ValueError("HuggingFace endpoint required")

        self.endpoint = config.endpoint
        self.headers: Dict[str, str] = {}
        if config.api_key:
            self.headers["Authorization"] = f"Bearer {config.api_key}"

    def _compose_prompt(self, prompt: str, system_prompt: Optional[str], json_mode: bool) -> str:
        # Text-generation endpoints have no JSON mode or system role
        parts = [system_prompt, prompt, JSON_ONLY_INSTRUCTION if json_mode else None]
        return "\n\n".join(part for part in parts if part)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        import aiohttp

        if not self.validate_prompt(prompt):
            raise ValueError("Invalid prompt")

        payload = {
            "inputs": self._compose_prompt(prompt, system_prompt, json_mode),
            "parameters": {
                "max_new_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
                "top_p": self.config.top_p,
                "return_full_text": False,
            },
        }

        started = time.perf_counter()
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            ) as session:
                async with session.post(self.endpoint, headers=self.headers, json=payload) as response:
                    response.raise_for_status()
                    body = await response.json()
        except Exception as e:
            self._log_failure(e)
            raise

        # The endpoint answers with either [{...}] or {...}
        first = body[0] if isinstance(body, list) and body else body
        generated_text = first.get("generated_text", "") if isinstance(first, dict) else ""

        latency_ms = _elapsed_ms(started)
        self._log_generation(latency_ms)
        return LLMResponse(
            text=generated_text,
            model=self.config.model_name,
            provider=self.config.provider.value,
            latency_ms=latency_ms,
            metadata={"endpoint": self.endpoint},
        )


class OpenAILLM(BaseLLM):
    """OpenAI chat completions."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)

        if not config.api_key:
            raise ValueError("OpenAI API key required")

        import openai
        self.client = openai.AsyncOpenAI(api_key=config.api_key)

    def _messages(self, prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        if not self.validate_prompt(prompt):
            raise ValueError("Invalid prompt")

        request: Dict[str, Any] = {
            "model": self.config.model_name,
            "messages": self._messages(prompt, system_prompt),
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "timeout": self.config.timeout_seconds,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        started = time.perf_counter()
        try:
            completion = await self.client.chat.completions.create(**request)
        except Exception as e:
            self._log_failure(e)
            raise

        latency_ms = _elapsed_ms(started)
        tokens_used = completion.usage.total_tokens if completion.usage else None
        self._log_generation(latency_ms, tokens_used)

        return LLMResponse(
            text=completion.choices[0].message.content or "",
            model=self.config.model_name,
            provider=self.config.provider.value,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )


def create_llm(config: LLMConfig) -> BaseLLM:
    """Build the provider named in ``config``.

    Raises:
        ValueError: Missing credentials/endpoint, or unsupported provider
    """
    if config.provider is LLMProvider.OPENAI:
        return OpenAILLM(config)
    if config.provider is LLMProvider.HUGGINGFACE:
        return HuggingFaceLLM(config)
    raise ValueError(f"Unsupported provider: {config.provider}")
