from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_SYSTEM_PROMPT = "You are a data transformation assistant."


@dataclass(frozen=True)
class EngineSettings:
    """Process-level settings, read from the environment."""

    log_level: str = "INFO"
    fetch_timeout: float = 30.0
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_tokens: int = 1000
    ai_system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            log_level=os.getenv("JFM_LOG_LEVEL", "INFO").upper(),
            fetch_timeout=float(os.getenv("JFM_FETCH_TIMEOUT", "30")),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            anthropic_model=os.getenv("ANTHROPIC_MODEL_NAME", cls.anthropic_model),
            anthropic_max_tokens=int(os.getenv("ANTHROPIC_MAX_TOKENS", "1000")),
            ai_system_prompt=os.getenv("JFM_AI_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        )

    @property
    def ai_enabled(self) -> bool:
        return bool(self.anthropic_api_key)
