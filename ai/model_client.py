"""
Model client abstraction for reasoning providers (Gemini, OpenAI, Anthropic).

Each client turns a prompt into raw response text. Parsing and fallback
live in the decision resolver, so clients simply raise on failure.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

log = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert crypto trading assistant. Analyze the provided currencies "
    "and return trading decisions in JSON format.\n"
    "For each currency, respond with one of: OPEN LONG, OPEN SHORT, CLOSE, or HOLD.\n"
    "Return a JSON array with objects containing: identifier, action, "
    "positionType (long/short/null), and reasoning."
)


def strip_markdown_fences(content: str) -> str:
    """Extract the body of a ```json fenced block if present."""
    if "```json" in content:
        return content.split("```json")[1].split("```")[0].strip()
    if "```" in content:
        return content.split("```")[1].split("```")[0].strip()
    return content


class ModelClient(ABC):
    """Abstract base class for reasoning-service clients."""

    model: str = "unknown"

    @abstractmethod
    def generate(self, prompt: str, timeout: float) -> str:
        """
        Send a prompt and return the model's text response.

        Args:
            prompt: Full user prompt
            timeout: Max time in seconds

        Returns:
            Raw response text

        Raises:
            Exception: On transport, quota or empty-response errors
        """


class GeminiClient(ModelClient):
    """Google Gemini client implementation."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash-001",
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        # Lazy import to avoid requiring google-generativeai unless used
        try:
            import google.generativeai as genai
            genai.configure(api_key=api_key)
            self.client = genai.GenerativeModel(model, system_instruction=SYSTEM_PROMPT)
        except ImportError:
            log.warning("google-generativeai package not installed - GeminiClient will fail at runtime")
            self.client = None

    def generate(self, prompt: str, timeout: float) -> str:
        if not self.client:
            raise RuntimeError("Gemini client not initialized - install google-generativeai package")

        start = time.perf_counter()
        try:
            response = self.client.generate_content(
                prompt,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens,
                    "response_mime_type": "application/json",
                },
                request_options={"timeout": timeout},
            )
            elapsed = time.perf_counter() - start
            log.info(f"Gemini call completed in {elapsed*1000:.1f}ms")

            text = getattr(response, "text", None)
            if not text:
                raise ValueError("Gemini returned an empty response")
            return text

        except Exception as e:
            elapsed = time.perf_counter() - start
            log.error(f"Gemini call failed after {elapsed*1000:.1f}ms: {e}")
            raise


class OpenAIClient(ModelClient):
    """OpenAI chat completions client implementation."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url or "https://api.openai.com/v1"
        self.temperature = temperature
        self.max_tokens = max_tokens

        try:
            from openai import OpenAI
            self.client = OpenAI(api_key=api_key, base_url=self.base_url, timeout=30.0)
        except ImportError:
            log.warning("openai package not installed - OpenAIClient will fail at runtime")
            self.client = None

    def generate(self, prompt: str, timeout: float) -> str:
        if not self.client:
            raise RuntimeError("OpenAI client not initialized - install openai package")

        start = time.perf_counter()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
            elapsed = time.perf_counter() - start
            log.info(f"OpenAI call completed in {elapsed*1000:.1f}ms")

            content = response.choices[0].message.content
            if not content:
                raise ValueError("OpenAI returned an empty response")
            return strip_markdown_fences(content)

        except Exception as e:
            elapsed = time.perf_counter() - start
            log.error(f"OpenAI call failed after {elapsed*1000:.1f}ms: {e}")
            raise


class AnthropicClient(ModelClient):
    """Anthropic Claude client implementation."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-sonnet-20241022",
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        try:
            from anthropic import Anthropic
            self.client = Anthropic(api_key=api_key, timeout=30.0)
        except ImportError:
            log.warning("anthropic package not installed - AnthropicClient will fail at runtime")
            self.client = None

    def generate(self, prompt: str, timeout: float) -> str:
        if not self.client:
            raise RuntimeError("Anthropic client not initialized - install anthropic package")

        start = time.perf_counter()
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
            elapsed = time.perf_counter() - start
            log.info(f"Anthropic call completed in {elapsed*1000:.1f}ms")

            return strip_markdown_fences(response.content[0].text)

        except Exception as e:
            elapsed = time.perf_counter() - start
            log.error(f"Anthropic call failed after {elapsed*1000:.1f}ms: {e}")
            raise


class MockClient(ModelClient):
    """Mock client for testing - returns a fixed response or raises."""

    model = "mock"

    def __init__(self, fixed_response: Optional[str] = None, error: Optional[Exception] = None):
        self.fixed_response = fixed_response
        self.error = error
        self.call_count = 0
        self.prompts = []

    def generate(self, prompt: str, timeout: float) -> str:
        self.call_count += 1
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.fixed_response if self.fixed_response is not None else "[]"


def create_model_client(
    provider: str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs
) -> Optional[ModelClient]:
    """
    Factory function to create the configured model client.

    Args:
        provider: "gemini", "openai", "anthropic", or "mock"
        api_key: API key for the provider
        model: Model name (provider-specific)
        **kwargs: temperature / max_tokens / base_url / fixed_response

    Returns:
        ModelClient instance, or None when a real provider has no api_key
        (every decision then comes from the fallback rule)

    Raises:
        ValueError: If provider is unknown
    """
    provider = (provider or "").lower()

    if provider == "mock":
        return MockClient(fixed_response=kwargs.get("fixed_response"))

    if provider not in ("gemini", "openai", "anthropic"):
        raise ValueError(f"Unknown provider: {provider}. Use 'gemini', 'openai', 'anthropic', or 'mock'")

    if not api_key:
        log.warning(f"No API key for {provider} provider, decisions will use fallback logic")
        return None

    tuning = {k: kwargs[k] for k in ("temperature", "max_tokens") if k in kwargs}

    if provider == "gemini":
        return GeminiClient(api_key=api_key, model=model or "gemini-2.0-flash-001", **tuning)
    if provider == "openai":
        return OpenAIClient(api_key=api_key, model=model or "gpt-4o-mini",
                            base_url=kwargs.get("base_url"), **tuning)
    return AnthropicClient(api_key=api_key, model=model or "claude-3-5-sonnet-20241022", **tuning)
