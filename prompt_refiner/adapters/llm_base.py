from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from prompt_refiner.errors import CLIInvocationError


@dataclass
class LLMResponse:
    raw_text: str
    error: Optional[CLIInvocationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LLMAdapter(Protocol):
    name: str

    async def complete(self, prompt: str) -> LLMResponse:
        raise NotImplementedError
