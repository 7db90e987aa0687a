"""Capability provider abstractions used by agents through the router."""

from __future__ import annotations

import asyncio
import json
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from ..errors import ProviderError


@dataclass(frozen=True)
class ModelCapabilities:
    """What a provider can do."""

    max_tokens: int
    supports_streaming: bool = False
    supports_embedding: bool = False
    supported_modalities: Tuple[str, ...] = ("text",)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_tokens": self.max_tokens,
            "supports_streaming": self.supports_streaming,
            "supports_embedding": self.supports_embedding,
            "supported_modalities": list(self.supported_modalities),
        }


@dataclass
class GenerateOptions:
    """Sampling options plus routing hints for a single request."""

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_tokens: Optional[int] = None
    preferred_provider: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def merged(self, **changes: Any) -> "GenerateOptions":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


class CapabilityProvider(Protocol):
    """Interface for generative/embedding backends."""

    name: str
    capabilities: ModelCapabilities

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:  # pragma: no cover - interface
        """Return a completion for the prompt."""

    def generate_stream(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> AsyncIterator[str]:  # pragma: no cover - interface
        """Yield completion chunks lazily."""

    async def embed(self, text: str) -> List[float]:  # pragma: no cover - interface
        """Return an embedding vector for the text."""


class ConsoleEchoProvider:
    """Fallback provider that asks the human operator for a response."""

    capabilities = ModelCapabilities(max_tokens=8192, supports_streaming=True)

    def __init__(self, name: str = "console", prefix: str = "Agent response") -> None:
        self.name = name
        self.prefix = prefix

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        return await asyncio.to_thread(self._ask, prompt)

    async def generate_stream(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> AsyncIterator[str]:
        yield await self.generate(prompt, options)

    async def embed(self, text: str) -> List[float]:
        raise ProviderError(f"{self.name} does not support embeddings")

    def _ask(self, prompt: str) -> str:
        print(f"\n[{self.prefix}]\n")
        print(prompt)
        print("Type response (end with empty line):")
        lines = []
        while True:
            try:
                line = input()
            except EOFError:  # pragma: no cover - console only
                break
            if not line:
                break
            lines.append(line)
        return "\n".join(lines)


Scripted = Union[str, BaseException]


class StaticResponseProvider:
    """Provider that replays a finite list of responses (useful for tests).

    Items that are exceptions are raised instead of returned, which makes it
    easy to script provider outages. Once the script is exhausted the
    ``fallback`` response is returned, or an error raised if none is set.
    """

    def __init__(
        self,
        responses: Iterable[Scripted] = (),
        *,
        name: str = "static",
        fallback: Optional[str] = None,
        embedding: Optional[Sequence[float]] = None,
        capabilities: Optional[ModelCapabilities] = None,
    ) -> None:
        self.name = name
        self._responses = iter(list(responses))
        self.fallback = fallback
        self.embedding = list(embedding) if embedding is not None else None
        self.capabilities = capabilities or ModelCapabilities(
            max_tokens=4096,
            supports_streaming=True,
            supports_embedding=embedding is not None,
        )
        self.calls: List[str] = []

    def _next(self) -> str:
        try:
            item = next(self._responses)
        except StopIteration as exc:
            if self.fallback is not None:
                return self.fallback
            raise ProviderError(f"{self.name} exhausted") from exc
        if isinstance(item, BaseException):
            raise item
        return item

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        self.calls.append(prompt)
        return self._next()

    async def generate_stream(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> AsyncIterator[str]:
        self.calls.append(prompt)
        for chunk in self._next().split(" "):
            yield chunk

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.embedding is None:
            raise ProviderError(f"{self.name} does not support embeddings")
        return list(self.embedding)


def _deliver(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, item: Any) -> bool:
    """Hand an item from a worker thread to the consuming loop.

    Returns False once that loop has been closed, so the worker can stop.
    """

    if loop.is_closed():
        return False
    try:
        loop.call_soon_threadsafe(queue.put_nowait, item)
    except RuntimeError:
        # loop closed between the check and the call
        return False
    return True


class OllamaProvider:
    """Calls a locally hosted Ollama model via its HTTP API."""

    def __init__(
        self,
        model: str,
        *,
        name: str = "ollama",
        host: str = "http://localhost:11434",
        embedding_model: Optional[str] = None,
        options: Dict[str, Any] | None = None,
        system_prompt: str | None = None,
        timeout: float = 120.0,
        max_tokens: int = 8192,
    ) -> None:
        self.name = name
        self.model = model
        self.host = host.rstrip("/")
        self.embedding_model = embedding_model or model
        self.options = options or {}
        self.system_prompt = system_prompt
        self.timeout = timeout
        self.capabilities = ModelCapabilities(
            max_tokens=max_tokens,
            supports_streaming=True,
            supports_embedding=True,
        )

    def _payload(self, prompt: str, options: Optional[GenerateOptions], stream: bool) -> Dict[str, Any]:
        model_options = dict(self.options)
        if options is not None:
            if options.temperature is not None:
                model_options["temperature"] = options.temperature
            if options.top_p is not None:
                model_options["top_p"] = options.top_p
            if options.top_k is not None:
                model_options["top_k"] = options.top_k
            if options.max_tokens is not None:
                model_options["num_predict"] = options.max_tokens
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": stream,
            "options": model_options,
        }
        if self.system_prompt:
            payload["system"] = self.system_prompt
        return payload

    def _request(self, path: str, payload: Dict[str, Any]) -> urllib.request.Request:
        return urllib.request.Request(
            url=f"{self.host}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with urllib.request.urlopen(self._request(path, payload), timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.URLError as exc:
            raise ProviderError(f"OllamaProvider failed to reach {self.host}: {exc}") from exc
        data = json.loads(body)
        if "error" in data:
            raise ProviderError(f"OllamaProvider error: {data['error']}")
        return data

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        data = await asyncio.to_thread(self._post, "/api/generate", self._payload(prompt, options, False))
        result = data.get("response")
        if not isinstance(result, str):
            raise ProviderError(f"OllamaProvider returned unexpected payload: {data}")
        return result.strip()

    async def generate_stream(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> AsyncIterator[str]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        done = object()
        request = self._request("/api/generate", self._payload(prompt, options, True))

        def pump() -> None:
            try:
                with urllib.request.urlopen(request, timeout=self.timeout) as response:
                    for raw in response:
                        line = raw.decode("utf-8").strip()
                        if not line:
                            continue
                        data = json.loads(line)
                        if "error" in data:
                            raise ProviderError(f"OllamaProvider error: {data['error']}")
                        if not _deliver(loop, queue, data.get("response", "")) or data.get("done"):
                            break
            except urllib.error.URLError as exc:
                _deliver(loop, queue, ProviderError(f"OllamaProvider failed to reach {self.host}: {exc}"))
            except Exception as exc:  # forwarded to the consumer
                _deliver(loop, queue, exc)
            finally:
                _deliver(loop, queue, done)

        threading.Thread(target=pump, name=f"{self.name}-stream", daemon=True).start()
        while True:
            item = await queue.get()
            if item is done:
                break
            if isinstance(item, BaseException):
                raise item
            if item:
                yield item

    async def embed(self, text: str) -> List[float]:
        data = await asyncio.to_thread(
            self._post, "/api/embeddings", {"model": self.embedding_model, "prompt": text}
        )
        vector = data.get("embedding")
        if not isinstance(vector, list):
            raise ProviderError(f"OllamaProvider returned unexpected embedding payload: {data}")
        return [float(value) for value in vector]
