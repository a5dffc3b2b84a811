"""Normalized provider responses and the callable provider adapter."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

__all__ = ["CallableProvider", "ProviderResponse", "TokenUsage", "normalize_response"]


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> TokenUsage:
        """Build usage from a mapping, deriving the total when it is missing."""
        if not data:
            return cls()
        prompt = int(data.get("prompt_tokens") or data.get("input_tokens") or 0)
        completion = int(data.get("completion_tokens") or data.get("output_tokens") or 0)
        total = int(data.get("total_tokens") or prompt + completion)
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def to_dict(self) -> dict[str, int]:
        """Serialize the usage to a dictionary."""
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ProviderResponse:
    """Answer of a provider in the shape the orchestration code expects."""

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)


def normalize_response(raw: Any) -> ProviderResponse:
    """Turn a raw provider answer into a ``ProviderResponse``.

    Accepted shapes are a ``ProviderResponse``, a plain string, or a mapping
    with ``content`` (or ``text``) and an optional ``usage`` mapping.

    Args:
        raw: The raw answer.

    Returns:
        The normalized response.

    Raises:
        TypeError: If the answer has none of the accepted shapes.
    """
    if isinstance(raw, ProviderResponse):
        return raw
    if isinstance(raw, str):
        return ProviderResponse(content=raw)
    if isinstance(raw, dict):
        content = raw.get("content", raw.get("text"))
        if content is None or not isinstance(content, str):
            msg = "Provider answer has no text content"
            raise TypeError(msg)
        return ProviderResponse(content=content, usage=TokenUsage.from_mapping(raw.get("usage")))
    msg = f"Unsupported provider answer type: {type(raw).__name__}"
    raise TypeError(msg)


class CallableProvider:
    """Adapts a plain function to the ``ProviderClient`` contract.

    Example:
        >>> async def call_model(prompt: str, options: dict) -> dict:
        ...     return {"content": "...", "usage": {"prompt_tokens": 10, "completion_tokens": 20}}
        >>> layer.register_provider("gemini", CallableProvider(call_model))
    """

    def __init__(self, fn: Callable[[str, Mapping[str, Any]], Any]) -> None:
        """Initialize the adapter.

        Args:
            fn: Function or coroutine function receiving ``(prompt, options)``.
        """
        self._fn = fn

    async def invoke(self, prompt: str, options: Mapping[str, Any]) -> ProviderResponse:
        """Call the wrapped function and normalize its answer."""
        result = self._fn(prompt, options)
        if inspect.isawaitable(result):
            result = await result
        return normalize_response(result)
