"""Closed enumeration of supported LLM providers."""

from enum import Enum
from typing import Union


class Provider(str, Enum):
    """Supported LLM HTTP APIs."""

    OPENAI = "openai"
    AZURE = "azure"
    TOGETHER = "together"
    LOCALAI = "localai"
    HUGGINGFACE = "huggingface"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    MISTRAL = "mistral"
    QWEN = "qwen"
    BAIDU = "baidu"
    XINGHUO = "xinghuo"
    MINIMAX = "minimax"
    MOONSHOT = "moonshot"
    DEEPSEEK = "deepseek"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Union["Provider", str, None]) -> "Provider":
        """
        Map a provider tag to a member.

        Unknown or empty tags become ``CUSTOM`` so callers never branch on
        free text.
        """
        if isinstance(value, cls):
            return value
        if not value:
            return cls.CUSTOM
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.CUSTOM

    def __str__(self) -> str:
        return self.value
