"""Boundary call used by ai-transform steps.

The engine only needs a callable ``(prompt, system_prompt, output_format) ->
{"response": str}``. ``AnthropicTransform`` is the implementation the
playground uses; tests and other callers pass their own.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import anthropic

from .exceptions import AITransformError
from .settings import EngineSettings

TransformCall = Callable[[str, str, Optional[str]], Dict[str, Any]]


class AnthropicTransform:
    """Send transform prompts to the Anthropic Messages API."""

    def __init__(self, settings: EngineSettings, client: Any = None):
        if client is None:
            if not settings.anthropic_api_key:
                raise AITransformError("ANTHROPIC_API_KEY environment variable not set")
            client = anthropic.Anthropic(api_key=settings.anthropic_api_key)
        self._client = client
        self._model = settings.anthropic_model
        self._max_tokens = settings.anthropic_max_tokens
        self._default_system = settings.ai_system_prompt

    def __call__(self, prompt: str, system_prompt: str, output_format: Optional[str] = None) -> Dict[str, Any]:
        system = system_prompt or self._default_system
        if output_format == "json":
            system += " Respond with accurate, concise content formatted as a JSON object."
        message = self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(
            getattr(block, "text", "") for block in (message.content or [])
        )
        return {"response": text}
