import asyncio
import json

import pytest

from prompt_refiner.errors import RefinementValidationError
from prompt_refiner.gates.reconciler import FALLBACK_RATIONALE, OFFLINE_RISK
from prompt_refiner.models import Provider
from prompt_refiner.pipeline_refine import (
    RefinementPipeline,
    arefine_prompt,
    build_payload,
    check_availability,
    is_degraded,
    refine_prompt,
)

from conftest import SCENARIO_B_PAYLOAD, SCENARIO_B_STDOUT

SCENARIO_A = "Quero um script que leia CSV e grave no Postgres com validação"


@pytest.fixture
def live(rules):
    return RefinementPipeline(mode="live", rules=rules, timeout_ms=10000)


# ---------------------------------------------------------
# build_payload
# ---------------------------------------------------------
def test_payload_contains_every_block_in_order(rules):
    payload = build_payload(rules, "load csv", "finance ETL", ["etl", "postgres"])
    header = payload.index(rules.main_refiner)
    prompt = payload.index('PROMPT TO REFINE:\n"load csv"')
    context = payload.index("ADDITIONAL CONTEXT:\nfinance ETL")
    tags = payload.index("SUGGESTED TAGS: etl, postgres")
    shape = payload.index('"acceptanceCriteria"')
    assert header < prompt < context < tags < shape


def test_payload_omits_optional_blocks(rules):
    payload = build_payload(rules, "load csv")
    assert "ADDITIONAL CONTEXT" not in payload
    assert "SUGGESTED TAGS" not in payload
    assert '"improvedPrompt"' in payload


# ---------------------------------------------------------
# request validation
# ---------------------------------------------------------
@pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
def test_empty_prompt_is_rejected(live, prompt):
    with pytest.raises(RefinementValidationError):
        refine_prompt(prompt, pipeline=live)


def test_unknown_provider_is_rejected(live):
    with pytest.raises(RefinementValidationError):
        refine_prompt("hello", provider="llama", pipeline=live)


def test_provider_aliases():
    assert Provider.parse(None) is Provider.CODEX
    assert Provider.parse("default") is Provider.CODEX
    assert Provider.parse("alternate") is Provider.GEMINI
    assert Provider.parse("GEMINI") is Provider.GEMINI


# ---------------------------------------------------------
# end-to-end scenarios
# ---------------------------------------------------------
def test_scenario_a_without_any_cli(monkeypatch, live, engine):
    monkeypatch.setenv("REFINER_CODEX_BIN", "/nonexistent/codex")
    result = refine_prompt(SCENARIO_A, pipeline=live)

    assert "data" in result.tags
    assert "automation" in result.tags
    assert result.tags[:2] == ["fallback", "offline"]
    assert result.risks[0] == OFFLINE_RISK
    assert "Input data validation is required" in result.risks
    assert result.metadata.sections == engine.get_template_metadata("software_development").sections
    assert "/nonexistent/codex" in result.rationale
    assert is_degraded(result)


def test_scenario_b_valid_output_passes_through(monkeypatch, live, fake_cli):
    monkeypatch.setenv(
        "REFINER_CODEX_BIN", fake_cli(f"sys.stdin.read()\nprint({SCENARIO_B_STDOUT!r})")
    )
    result = refine_prompt("do something", pipeline=live)
    assert result.to_dict() == SCENARIO_B_PAYLOAD
    assert not is_degraded(result)


def test_scenario_c_narrative_output(monkeypatch, live, fake_cli):
    monkeypatch.setenv(
        "REFINER_CODEX_BIN", fake_cli("sys.stdin.read()\nprint('Here are some thoughts, no JSON.')")
    )
    result = refine_prompt(SCENARIO_A, pipeline=live)
    assert result.rationale == FALLBACK_RATIONALE
    assert "data" in result.tags
    assert is_degraded(result)


def test_non_zero_exit_uses_error_fallback(monkeypatch, live, fake_cli):
    monkeypatch.setenv(
        "REFINER_CODEX_BIN", fake_cli("sys.stderr.write('quota exceeded')\nsys.exit(2)")
    )
    result = refine_prompt("build an api", pipeline=live)
    assert "exited with code 2" in result.rationale
    assert "quota exceeded" in result.rationale
    assert result.risks[0] == OFFLINE_RISK


def test_timeout_uses_error_fallback(monkeypatch, rules, fake_cli):
    monkeypatch.setenv("REFINER_CODEX_BIN", fake_cli("import time\ntime.sleep(5)"))
    pipeline = RefinementPipeline(mode="live", rules=rules, timeout_ms=100)
    result = refine_prompt("build an api", pipeline=pipeline)
    assert "timed out after 100ms" in result.rationale
    assert result.tags[:2] == ["fallback", "offline"]


def test_cli_receives_payload_and_model(monkeypatch, live, fake_cli, tmp_path):
    capture = tmp_path / "capture.json"
    body = (
        "import json\n"
        f"json.dump({{'argv': sys.argv[1:], 'stdin': sys.stdin.read()}}, open({str(capture)!r}, 'w'))\n"
        f"print({SCENARIO_B_STDOUT!r})"
    )
    monkeypatch.setenv("REFINER_GEMINI_BIN", fake_cli(body, name="gemini"))
    refine_prompt(
        "load csv",
        context="finance",
        tags=["etl"],
        provider="alternate",
        model="gemini-1.5-pro",
        pipeline=live,
    )
    seen = json.loads(capture.read_text())
    assert seen["argv"] == ["chat", "-m", "gemini-1.5-pro", "--format", "json"]
    assert '"load csv"' in seen["stdin"]
    assert "ADDITIONAL CONTEXT:\nfinance" in seen["stdin"]
    assert "SUGGESTED TAGS: etl" in seen["stdin"]


def test_incomplete_ai_output_is_enriched(monkeypatch, live, fake_cli):
    partial = dict(SCENARIO_B_PAYLOAD, rationale="", risks=[], tags=[])
    partial["metadata"] = {"sections": [], "acceptanceCriteria": [], "checklist": []}
    monkeypatch.setenv("REFINER_CODEX_BIN", fake_cli(f"print({json.dumps(partial)!r})"))
    result = refine_prompt("load csv", pipeline=live)
    assert result.improved_prompt == "x"
    assert result.rationale
    assert result.risks
    assert result.tags == ["csv", "data"]
    assert result.metadata.sections == ["Plan", "Risks", "Next actions", "Tests"]
    assert result.metadata.acceptance_criteria
    assert result.metadata.checklist


def test_raw_dir_archives_payload_and_stdout(monkeypatch, rules, fake_cli, tmp_path):
    monkeypatch.setenv("REFINER_CODEX_BIN", fake_cli(f"print({SCENARIO_B_STDOUT!r})"))
    raw_dir = tmp_path / "raw"
    pipeline = RefinementPipeline(mode="live", rules=rules, raw_dir=raw_dir)
    refine_prompt("load csv", pipeline=pipeline)
    assert '"load csv"' in (raw_dir / "codex_payload.txt").read_text()
    assert (raw_dir / "codex_stdout.txt").read_text() == SCENARIO_B_STDOUT


def test_concurrent_refinements(monkeypatch, live, fake_cli):
    monkeypatch.setenv(
        "REFINER_CODEX_BIN",
        fake_cli(f"import time\ntime.sleep(0.2)\nprint({SCENARIO_B_STDOUT!r})"),
    )

    async def many():
        return await asyncio.gather(
            *(arefine_prompt(f"task {index}", pipeline=live) for index in range(4))
        )

    results = asyncio.run(many())
    assert [result.to_dict() for result in results] == [SCENARIO_B_PAYLOAD] * 4


# ---------------------------------------------------------
# mock mode and availability
# ---------------------------------------------------------
def test_mock_mode_from_environment(monkeypatch, rules):
    monkeypatch.setenv("USE_MOCK_AI", "true")
    monkeypatch.setenv("REFINER_CODEX_BIN", "/nonexistent/codex")
    result = refine_prompt(SCENARIO_A, pipeline=RefinementPipeline(rules=rules))
    assert "postgres" in result.tags
    assert result.metadata.sections[0] == "CSV Parsing"
    assert not is_degraded(result)


def test_check_availability(monkeypatch, fake_cli):
    monkeypatch.setenv("REFINER_CODEX_BIN", fake_cli("sys.stdin.read()\nprint('hi')"))
    assert asyncio.run(check_availability("codex"))
    monkeypatch.setenv("REFINER_CODEX_BIN", "/nonexistent/codex")
    assert not asyncio.run(check_availability("codex"))


def test_model_supplied_offline_tag_is_not_degraded(monkeypatch, live, fake_cli):
    healthy = dict(SCENARIO_B_PAYLOAD, tags=["offline", "fallback", "sync"])
    monkeypatch.setenv("REFINER_CODEX_BIN", fake_cli(f"print({json.dumps(healthy)!r})"))
    result = refine_prompt("build an offline-first sync app", pipeline=live)
    assert result.tags == ["offline", "fallback", "sync"]
    assert not is_degraded(result)


def test_deeply_nested_cli_output_does_not_reach_caller(monkeypatch, live, fake_cli):
    nested = '{"a":' * 3000 + "1" + "}" * 3000
    monkeypatch.setenv("REFINER_CODEX_BIN", fake_cli(f"print({nested!r})"))
    result = refine_prompt("load csv", pipeline=live)
    assert result.rationale == FALLBACK_RATIONALE
    assert is_degraded(result)
