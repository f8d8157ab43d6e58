from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    content: str
    model: str
    provider: str
    token_usage: dict  # {"prompt_tokens": N, "completion_tokens": M, "total_tokens": T}
    latency_ms: int
    finish_reason: str = "stop"


@dataclass
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    default_model: str
    rpm_limit: int = 60
    timeout_seconds: int = 30
    max_retries: int = 2


@dataclass
class _RateLimiter:
    """Simple sliding window rate limiter."""

    rpm_limit: int
    _timestamps: list[float] = field(default_factory=list)

    async def acquire(self) -> None:
        """Wait until rate limit allows a request."""
        now = time.monotonic()
        self._timestamps = [t for t in self._timestamps if now - t < 60]
        if len(self._timestamps) >= self.rpm_limit:
            wait = 60 - (now - self._timestamps[0])
            if wait > 0:
                logger.info("Rate limit: waiting %.1fs", wait)
                await asyncio.sleep(wait)
        self._timestamps.append(time.monotonic())


class LLMGateway:
    """Gateway for OpenAI-compatible chat completion providers (xAI Grok)."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._providers: dict[str, ProviderConfig] = {}
        self._limiters: dict[str, _RateLimiter] = {}
        self._client: httpx.AsyncClient | None = None
        self._transport = transport

    def register_provider(self, config: ProviderConfig) -> None:
        self._providers[config.name] = config
        self._limiters[config.name] = _RateLimiter(rpm_limit=config.rpm_limit)

    def has_provider(self, name: str) -> bool:
        return name in self._providers and bool(self._providers[name].api_key)

    async def start(self) -> None:
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0), transport=self._transport)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def call(
        self,
        provider: str,
        user_prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int = 800,
        temperature: float = 0.1,
    ) -> LLMResponse:
        """Call a provider, retrying transport and HTTP errors with exponential backoff.

        Raises RuntimeError once retries are exhausted or the body is malformed.
        """
        if provider not in self._providers:
            raise ValueError(f"Unknown provider: {provider}")

        config = self._providers[provider]
        limiter = self._limiters[provider]
        target_model = model or config.default_model

        if not self._client:
            await self.start()

        await limiter.acquire()

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        url = f"{config.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": target_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        last_error: Exception | None = None
        for attempt in range(config.max_retries):
            try:
                start_time = time.monotonic()
                response = await self._client.post(  # type: ignore[union-attr]
                    url, json=body, headers=headers, timeout=config.timeout_seconds,
                )
                latency_ms = int((time.monotonic() - start_time) * 1000)

                response.raise_for_status()
                data = response.json()

                choice = data["choices"][0]
                usage = data.get("usage", {})
                return LLMResponse(
                    content=choice["message"]["content"] or "",
                    model=data.get("model", target_model),
                    provider=provider,
                    token_usage={
                        "prompt_tokens": usage.get("prompt_tokens", 0),
                        "completion_tokens": usage.get("completion_tokens", 0),
                        "total_tokens": usage.get("total_tokens", 0),
                    },
                    latency_ms=latency_ms,
                    finish_reason=choice.get("finish_reason", "stop"),
                )
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                last_error = e
                if attempt < config.max_retries - 1:
                    wait = 2**attempt
                    logger.warning(
                        "Provider %s model %s attempt %d failed: %s. Retrying in %ds",
                        provider, target_model, attempt + 1, e, wait,
                    )
                    await asyncio.sleep(wait)
            except (KeyError, IndexError, TypeError, ValueError) as e:
                # 200 with a body that is not a chat completion
                last_error = e
                logger.warning(
                    "Provider %s model %s returned a malformed response: %r",
                    provider, target_model, e,
                )
                break

        raise RuntimeError(
            f"Provider {provider} ({target_model}) failed after "
            f"{config.max_retries} attempts: {last_error}"
        )

    @classmethod
    def from_config(cls, config) -> LLMGateway:
        """Create gateway from AppConfig, registering xAI when a key is set."""
        gw = cls()
        if config.grok_api_key:
            gw.register_provider(
                ProviderConfig(
                    name="xai",
                    base_url="https://api.x.ai/v1",
                    api_key=config.grok_api_key,
                    default_model=config.grok_models[0],
                    rpm_limit=60,
                    timeout_seconds=30,
                )
            )
        return gw
