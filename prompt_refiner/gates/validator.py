from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from jsonschema import Draft7Validator

from prompt_refiner.utils.io import read_text

SCHEMAS_DIR = Path(__file__).resolve().parents[1] / "schemas"


@dataclass
class ValidationOutcome:
    valid: bool
    payload: Optional[Dict] = None
    reasons: List[str] = field(default_factory=list)


@lru_cache(maxsize=None)
def _validator(name: str) -> Draft7Validator:
    schema = json.loads(read_text(SCHEMAS_DIR / name))
    return Draft7Validator(schema)


def validate_refined(payload: object) -> ValidationOutcome:
    validator = _validator("refined_prompt.schema.json")
    reasons = []
    errors = sorted(validator.iter_errors(payload), key=lambda err: [str(part) for part in err.path])
    for error in errors:
        location = "/".join(str(part) for part in error.path) or "<root>"
        reasons.append(f"{location}: {error.message}")
    if reasons:
        return ValidationOutcome(valid=False, reasons=reasons)
    return ValidationOutcome(valid=True, payload=payload)
