import json
import sys

import pytest

from prompt_refiner.rules import load_rules
from prompt_refiner.templates import TemplateEngine

SCENARIO_B_PAYLOAD = {
    "improvedPrompt": "x",
    "rationale": "y",
    "risks": ["r1"],
    "tags": ["t1"],
    "metadata": {"sections": ["s1"], "acceptanceCriteria": ["a1"], "checklist": ["c1"]},
}
SCENARIO_B_STDOUT = json.dumps(SCENARIO_B_PAYLOAD, separators=(",", ":"))


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in (
        "USE_MOCK_AI",
        "REFINER_RULES_PATH",
        "REFINER_CODEX_BIN",
        "REFINER_CODEX_MODEL",
        "REFINER_GEMINI_BIN",
        "REFINER_GEMINI_MODEL",
        "REFINER_TIMEOUT_MS",
        "REFINER_DEBUG",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def rules():
    return load_rules()


@pytest.fixture
def engine(rules):
    return TemplateEngine(rules)


@pytest.fixture
def fake_cli(tmp_path):
    """Write an executable Python script that stands in for an AI CLI."""

    def _make(body: str, name: str = "fake-cli") -> str:
        path = tmp_path / name
        path.write_text(f"#!{sys.executable}\nimport sys\n{body}\n", encoding="utf-8")
        path.chmod(0o755)
        return str(path)

    return _make
