from __future__ import annotations

import json
import re
from typing import Dict, Iterator

from prompt_refiner.errors import JSONExtractionError


def _strip_code_fences(text: str) -> str:
    fenced = re.findall(r"```(?:json)?\s*(.*?)```", text, flags=re.DOTALL | re.IGNORECASE)
    if fenced:
        return "\n".join(fenced)
    return text


def _iter_object_starts(text: str) -> Iterator[int]:
    for match in re.finditer(r"\{", text):
        yield match.start()


def extract_json_object(raw_text: str) -> Dict:
    """Return the first balanced JSON object found in raw_text.

    Fenced blocks are searched before the surrounding narrative.
    """
    decoder = json.JSONDecoder()
    fenced = _strip_code_fences(raw_text)
    sources = (fenced, raw_text) if fenced != raw_text else (raw_text,)
    for source in sources:
        for start in _iter_object_starts(source):
            try:
                parsed, _ = decoder.raw_decode(source, start)
            except (json.JSONDecodeError, RecursionError):
                # RecursionError: nesting deeper than the decoder allows.
                continue
            if isinstance(parsed, dict):
                return parsed

    snippet = raw_text.strip().replace("\n", " ")
    snippet = (snippet[:200] + "...") if len(snippet) > 200 else snippet
    raise JSONExtractionError(f"No JSON object found in output. Snippet: {snippet}")
