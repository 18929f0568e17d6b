from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from prompt_refiner.errors import RefinementValidationError


class Provider(str, Enum):
    CODEX = "codex"
    GEMINI = "gemini"

    @classmethod
    def parse(cls, value: "Provider | str | None") -> "Provider":
        if value is None or value == "" or value == "default":
            return cls.CODEX
        if isinstance(value, Provider):
            return value
        if value == "alternate":
            return cls.GEMINI
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise RefinementValidationError(f"Unsupported provider: {value}") from exc


@dataclass
class RefinementRequest:
    prompt: str
    context: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    provider: Provider = Provider.CODEX
    model: Optional[str] = None

    def validate(self) -> None:
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise RefinementValidationError("Prompt cannot be empty.")
        if any(not isinstance(tag, str) for tag in self.tags):
            raise RefinementValidationError("Tags must be strings.")


@dataclass
class TemplateMetadata:
    sections: List[str] = field(default_factory=list)
    acceptance_criteria: List[str] = field(default_factory=list)
    checklist: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "sections": list(self.sections),
            "acceptanceCriteria": list(self.acceptance_criteria),
            "checklist": list(self.checklist),
        }

    @classmethod
    def from_dict(cls, payload: Dict) -> "TemplateMetadata":
        return cls(
            sections=list(payload.get("sections") or []),
            acceptance_criteria=list(payload.get("acceptanceCriteria") or []),
            checklist=list(payload.get("checklist") or []),
        )


@dataclass
class RefinedResult:
    improved_prompt: str
    rationale: str
    risks: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    metadata: TemplateMetadata = field(default_factory=TemplateMetadata)

    def to_dict(self) -> Dict[str, object]:
        return {
            "improvedPrompt": self.improved_prompt,
            "rationale": self.rationale,
            "risks": list(self.risks),
            "tags": list(self.tags),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Dict) -> "RefinedResult":
        return cls(
            improved_prompt=payload.get("improvedPrompt") or "",
            rationale=payload.get("rationale") or "",
            risks=list(payload.get("risks") or []),
            tags=list(payload.get("tags") or []),
            metadata=TemplateMetadata.from_dict(payload.get("metadata") or {}),
        )
