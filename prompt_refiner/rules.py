from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import yaml

from prompt_refiner.utils.io import read_text
from prompt_refiner.utils.log import log

PACKAGED_RULES = Path(__file__).resolve().parent / "config" / "prompt_rules.yaml"

DEFAULT_MAIN_REFINER = (
    "You are an expert prompt engineer. Analyze and improve the given prompt "
    "with structured output in JSON format."
)


@dataclass(frozen=True)
class TemplateRule:
    prompt_prefix: str
    sections: Tuple[str, ...]


@dataclass(frozen=True)
class PromptRules:
    main_refiner: str
    templates: Mapping[str, TemplateRule] = field(default_factory=lambda: MappingProxyType({}))
    risk_categories: Tuple[str, ...] = ()
    common_tags: Tuple[str, ...] = ()


DEFAULT_RULES = PromptRules(
    main_refiner=DEFAULT_MAIN_REFINER,
    templates=MappingProxyType(
        {
            "software_development": TemplateRule(
                prompt_prefix="As an experienced senior developer, ",
                sections=(
                    "Requirements Analysis",
                    "Proposed Architecture",
                    "Implementation",
                    "Tests",
                    "Documentation",
                ),
            )
        }
    ),
    risk_categories=("Security", "Performance", "Scalability"),
    common_tags=("development", "automation", "data"),
)


def default_rules() -> PromptRules:
    return DEFAULT_RULES


def load_rules(path: Optional[Path] = None) -> PromptRules:
    """Load the rule document once; any problem yields the built-in defaults."""
    if path is None:
        env_path = os.getenv("REFINER_RULES_PATH")
        path = Path(env_path) if env_path else PACKAGED_RULES
    try:
        raw = yaml.safe_load(read_text(Path(path)))
        return parse_rules(raw)
    except (OSError, yaml.YAMLError, ValueError) as exc:
        log("rules", f"failed to load {path}: {exc}; using built-in defaults")
        return default_rules()


def parse_rules(raw: object) -> PromptRules:
    if not isinstance(raw, dict):
        raise ValueError("rule document must be a mapping")
    system_prompts = raw.get("system_prompts")
    if not isinstance(system_prompts, dict) or not isinstance(
        system_prompts.get("main_refiner"), str
    ):
        raise ValueError("system_prompts.main_refiner is required")

    templates: Dict[str, TemplateRule] = {}
    raw_templates = raw.get("templates") or {}
    if not isinstance(raw_templates, dict):
        raise ValueError("templates must be a mapping")
    for name, entry in raw_templates.items():
        if not isinstance(entry, dict):
            raise ValueError(f"template {name} must be a mapping")
        sections = entry.get("sections") or []
        if not isinstance(sections, list) or not all(isinstance(s, str) for s in sections):
            raise ValueError(f"templates.{name}.sections must be a list of strings")
        templates[str(name)] = TemplateRule(
            prompt_prefix=str(entry.get("prompt_prefix") or ""),
            sections=tuple(sections),
        )

    return PromptRules(
        main_refiner=system_prompts["main_refiner"].strip(),
        templates=MappingProxyType(templates),
        risk_categories=_string_tuple(raw.get("risk_categories"), "risk_categories"),
        common_tags=_string_tuple(raw.get("common_tags"), "common_tags"),
    )


def _string_tuple(value: object, name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list")
    return tuple(str(item) for item in value)
