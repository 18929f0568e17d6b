from __future__ import annotations

from typing import List, Optional

from prompt_refiner.errors import JSONExtractionError
from prompt_refiner.gates.parsers import extract_json_object
from prompt_refiner.gates.validator import validate_refined
from prompt_refiner.models import RefinedResult, TemplateMetadata
from prompt_refiner.templates import GENERIC_RISK, TemplateEngine, dedupe
from prompt_refiner.utils.log import debug, log

MAX_TAGS = 8
SALVAGE_LENGTH_RATIO = 0.8

FALLBACK_RATIONALE = (
    "Prompt synthesized via fallback template because the AI CLI output "
    "could not be used as structured JSON."
)
DEFAULT_RATIONALE = "Prompt processed with automatic refinement."
OFFLINE_RISK = "AI backend unavailable - offline analysis used"
OFFLINE_NOTE = "[NOTE: prompt processed in offline mode due to an AI CLI error]"
FALLBACK_TAGS = ["fallback", "offline"]
DEFAULT_TAG = "general"

DEFAULT_SECTIONS = ["Plan", "Risks", "Next actions", "Tests"]
DEFAULT_ACCEPTANCE = [
    "Solution implemented correctly",
    "Tests executed successfully",
    "Documentation updated",
]
DEFAULT_CHECKLIST = [
    "Review requirements",
    "Implement solution",
    "Run tests",
    "Validate result",
]


def reconcile(
    raw_output: str,
    original_prompt: str,
    context: Optional[str],
    tags: Optional[List[str]],
    engine: TemplateEngine,
) -> RefinedResult:
    """Turn raw CLI stdout into a RefinedResult. Never raises."""
    try:
        payload = extract_json_object(raw_output)
    except JSONExtractionError as exc:
        debug("reconcile", str(exc))
        return build_fallback(original_prompt, raw_output, tags, engine)

    outcome = validate_refined(payload)
    if not outcome.valid:
        log("reconcile", f"output failed validation: {'; '.join(outcome.reasons)}")
        return build_fallback(original_prompt, raw_output, tags, engine)
    return RefinedResult.from_dict(outcome.payload)


def salvage_improved_prompt(raw_output: str, original_prompt: str) -> str:
    threshold = len(original_prompt) * SALVAGE_LENGTH_RATIO
    for line in raw_output.splitlines():
        line = line.strip()
        if line and len(line) >= threshold:
            return line
    return original_prompt


def build_fallback(
    original_prompt: str,
    raw_output: str,
    tags: Optional[List[str]],
    engine: TemplateEngine,
) -> RefinedResult:
    category = engine.detect_template(original_prompt)
    return RefinedResult(
        improved_prompt=salvage_improved_prompt(raw_output, original_prompt),
        rationale=FALLBACK_RATIONALE,
        risks=engine.identify_risks(original_prompt),
        tags=dedupe(engine.suggest_tags(original_prompt) + list(tags or []))[:MAX_TAGS],
        metadata=engine.get_template_metadata(category),
    )


def build_error_fallback(
    original_prompt: str,
    error: Exception,
    tags: Optional[List[str]],
    engine: TemplateEngine,
) -> RefinedResult:
    category = engine.detect_template(original_prompt)
    return RefinedResult(
        improved_prompt=f"{original_prompt}\n\n{OFFLINE_NOTE}",
        rationale=(
            f"Could not reach the AI CLI ({error}). "
            "Using local template-based analysis instead."
        ),
        risks=[OFFLINE_RISK, *engine.identify_risks(original_prompt)],
        tags=dedupe(
            FALLBACK_TAGS + engine.suggest_tags(original_prompt) + list(tags or [])
        )[:MAX_TAGS],
        metadata=engine.get_template_metadata(category),
    )


def _non_blank(items: List[str]) -> List[str]:
    return [item for item in items if isinstance(item, str) and item.strip()]


def enrich(result: RefinedResult, original_prompt: str, engine: TemplateEngine) -> RefinedResult:
    """Restore every required field; applying it twice changes nothing."""
    tags = dedupe(_non_blank(result.tags))[:MAX_TAGS]
    if not tags:
        tags = engine.suggest_tags(original_prompt)[:MAX_TAGS] or [DEFAULT_TAG]

    metadata = result.metadata
    return RefinedResult(
        improved_prompt=result.improved_prompt if result.improved_prompt.strip() else original_prompt,
        rationale=result.rationale if result.rationale.strip() else DEFAULT_RATIONALE,
        risks=_non_blank(result.risks) or [GENERIC_RISK],
        tags=tags,
        metadata=TemplateMetadata(
            sections=_non_blank(metadata.sections) or list(DEFAULT_SECTIONS),
            acceptance_criteria=_non_blank(metadata.acceptance_criteria) or list(DEFAULT_ACCEPTANCE),
            checklist=_non_blank(metadata.checklist) or list(DEFAULT_CHECKLIST),
        ),
    )
