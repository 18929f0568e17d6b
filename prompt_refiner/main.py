from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from prompt_refiner.errors import RefinementValidationError
from prompt_refiner.pipeline_refine import (
    RefinementPipeline,
    arefine_prompt,
    check_availability,
    default_mode,
    is_degraded,
)
from prompt_refiner.rules import load_rules
from prompt_refiner.utils.io import write_json
from prompt_refiner.utils.log import log
from prompt_refiner.utils.time import utc_timestamp


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prompt-refiner",
        description="Refine a raw task description through an AI CLI, with offline fallback.",
    )
    parser.add_argument("--prompt", help="Raw task description to refine")
    parser.add_argument("--context", help="Additional context for the refinement")
    parser.add_argument("--tag", action="append", default=[], help="Suggested tag (repeatable)")
    parser.add_argument(
        "--provider",
        choices=["codex", "gemini", "default", "alternate"],
        default="codex",
    )
    parser.add_argument("--model", help="Model override for the selected provider")
    parser.add_argument("--mode", choices=["mock", "live"], default=None)
    parser.add_argument("--timeout-ms", type=int, default=None)
    parser.add_argument("--rules", help="Path to a prompt rules YAML document")
    parser.add_argument("--runs-dir", help="Archive payload, raw output and result here")
    parser.add_argument("--check", action="store_true", help="Only probe provider availability")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    parser = build_parser()
    args = parser.parse_args(argv)
    rules = load_rules(Path(args.rules) if args.rules else None)

    if args.check:
        available = asyncio.run(check_availability(args.provider, rules, args.timeout_ms))
        log("refine", f"{args.provider} available={available}")
        return 0 if available else 1

    if args.prompt is None:
        parser.error("--prompt is required unless --check is given")

    run_dir = None
    if args.runs_dir:
        run_dir = Path(args.runs_dir) / utc_timestamp()

    pipeline = RefinementPipeline(
        mode=args.mode or default_mode(),
        rules=rules,
        timeout_ms=args.timeout_ms,
        raw_dir=run_dir / "raw" if run_dir else None,
    )
    try:
        result = asyncio.run(
            arefine_prompt(
                args.prompt,
                context=args.context,
                tags=args.tag,
                provider=args.provider,
                model=args.model,
                pipeline=pipeline,
            )
        )
    except RefinementValidationError as exc:
        log("refine", f"invalid request: {exc}")
        return 2

    payload = result.to_dict()
    if run_dir is not None:
        write_json(run_dir / "artifacts" / "refined_prompt.json", payload)
    if is_degraded(result):
        log("refine", "AI output unavailable or unusable; result built by offline analysis")
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
