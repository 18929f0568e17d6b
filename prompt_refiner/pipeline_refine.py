from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import List, Optional

from prompt_refiner.adapters.cli_adapter import CLIAdapter
from prompt_refiner.adapters.llm_base import LLMAdapter, LLMResponse
from prompt_refiner.adapters.mock_adapter import MockAdapter
from prompt_refiner.gates.reconciler import (
    FALLBACK_RATIONALE,
    OFFLINE_RISK,
    build_error_fallback,
    enrich,
    reconcile,
)
from prompt_refiner.models import Provider, RefinedResult, RefinementRequest
from prompt_refiner.rules import PromptRules, load_rules
from prompt_refiner.templates import TemplateEngine
from prompt_refiner.utils.io import write_text
from prompt_refiner.utils.log import log

OUTPUT_FORMAT = """Please refine this prompt and respond with ONLY a valid JSON object matching this exact structure:
{
  "improvedPrompt": "Your refined version of the prompt",
  "rationale": "Explanation of changes made and reasoning",
  "risks": ["Array of potential risks or issues"],
  "tags": ["Array of relevant tags"],
  "metadata": {
    "sections": ["Plan", "Risks", "Next actions", "Tests"],
    "acceptanceCriteria": ["Specific measurable outcomes"],
    "checklist": ["Actionable verification steps"]
  }
}"""


def default_mode() -> str:
    return "mock" if os.getenv("USE_MOCK_AI", "").lower() == "true" else "live"


def build_payload(
    rules: PromptRules,
    prompt: str,
    context: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> str:
    parts = [rules.main_refiner, f'User: PROMPT TO REFINE:\n"{prompt}"']
    if context:
        parts.append(f"ADDITIONAL CONTEXT:\n{context}")
    if tags:
        parts.append(f"SUGGESTED TAGS: {', '.join(tags)}")
    parts.append(OUTPUT_FORMAT)
    return "\n\n".join(parts)


class RefinementPipeline:
    """Prompt in, RefinedResult out; only request validation errors escape."""

    def __init__(
        self,
        mode: Optional[str] = None,
        rules: Optional[PromptRules] = None,
        timeout_ms: Optional[int] = None,
        raw_dir: Optional[Path] = None,
    ) -> None:
        self.mode = mode or default_mode()
        self.rules = rules if rules is not None else load_rules()
        self.engine = TemplateEngine(self.rules)
        self.timeout_ms = timeout_ms
        self.raw_dir = raw_dir

    async def refine(self, request: RefinementRequest) -> RefinedResult:
        request.validate()
        payload = build_payload(self.rules, request.prompt, request.context, request.tags)
        adapter = self._adapter(request)
        response = await adapter.complete(payload)
        self._archive(adapter.name, payload, response)

        if response.error is not None:
            result = build_error_fallback(request.prompt, response.error, request.tags, self.engine)
        else:
            result = reconcile(
                response.raw_text, request.prompt, request.context, request.tags, self.engine
            )
        return enrich(result, request.prompt, self.engine)

    def _adapter(self, request: RefinementRequest) -> LLMAdapter:
        if self.mode == "mock":
            return MockAdapter()
        return CLIAdapter(request.provider, request.model, self.timeout_ms)

    def _archive(self, name: str, payload: str, response: LLMResponse) -> None:
        if self.raw_dir is None:
            return
        write_text(self.raw_dir / f"{name}_payload.txt", payload)
        write_text(self.raw_dir / f"{name}_stdout.txt", response.raw_text)
        if response.error is not None:
            write_text(self.raw_dir / f"{name}_error.txt", f"{response.error}\n")


def build_request(
    prompt: str,
    context: Optional[str] = None,
    tags: Optional[List[str]] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> RefinementRequest:
    return RefinementRequest(
        prompt=prompt,
        context=context,
        tags=list(tags or []),
        provider=Provider.parse(provider),
        model=model or None,
    )


async def arefine_prompt(
    prompt: str,
    context: Optional[str] = None,
    tags: Optional[List[str]] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    pipeline: Optional[RefinementPipeline] = None,
) -> RefinedResult:
    request = build_request(prompt, context, tags, provider, model)
    pipeline = pipeline or RefinementPipeline()
    return await pipeline.refine(request)


def refine_prompt(
    prompt: str,
    context: Optional[str] = None,
    tags: Optional[List[str]] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    pipeline: Optional[RefinementPipeline] = None,
) -> RefinedResult:
    return asyncio.run(arefine_prompt(prompt, context, tags, provider, model, pipeline))


def is_degraded(result: RefinedResult) -> bool:
    # Tags come from the model too; only the fixed markers below are ours.
    return OFFLINE_RISK in result.risks or result.rationale == FALLBACK_RATIONALE


async def check_availability(
    provider: Optional[str] = None,
    rules: Optional[PromptRules] = None,
    timeout_ms: Optional[int] = None,
) -> bool:
    engine = TemplateEngine(rules if rules is not None else load_rules())
    adapter = CLIAdapter(Provider.parse(provider), timeout_ms=timeout_ms)
    payload = f"{engine.format_system_prompt('Test system availability.')}\n\nUser: Hello"
    response = await adapter.complete(payload)
    if not response.ok:
        log("refine", f"{adapter.name} CLI not available: {response.error}")
    return response.ok
