from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict

from prompt_refiner.adapters.llm_base import LLMAdapter, LLMResponse


@dataclass
class MockAdapter(LLMAdapter):
    scenario: str = "default"
    name: str = "mock"

    async def complete(self, prompt: str) -> LLMResponse:
        if self.scenario == "narrative":
            return LLMResponse(
                raw_text="I could not produce structured output for this request, sorry."
            )
        if self.scenario == "invalid":
            return LLMResponse(raw_text=json.dumps({"improvedPrompt": "partial", "risks": "none"}))
        return LLMResponse(raw_text=json.dumps(self._build_payload()))

    def _build_payload(self) -> Dict:
        return {
            "improvedPrompt": (
                "Create a robust Python script that reads data from a CSV file named "
                "'input.csv'. The script must validate each row against a predefined schema "
                "(e.g. 'id' is a number, 'email' is a valid email address). Valid rows are "
                "inserted into a PostgreSQL table named 'customers'; invalid rows are logged "
                "to 'error.log' with clear error messages. Database connection details are "
                "read from environment variables (PG_HOST, PG_USER, PG_PASSWORD, PG_DATABASE)."
            ),
            "rationale": (
                "The original prompt was vague. This version specifies file names, validation "
                "rules, error handling, and configuration, making it an actionable task."
            ),
            "risks": [
                "The CSV file might be very large; consider stream processing.",
                "Database credentials must be handled securely and never hard-coded.",
                "The script assumes the 'customers' table already exists with the right schema.",
            ],
            "tags": ["python", "csv", "postgres", "validation", "etl"],
            "metadata": {
                "sections": [
                    "CSV Parsing",
                    "Data Validation",
                    "Database Insertion",
                    "Error Logging",
                    "Configuration",
                ],
                "acceptanceCriteria": [
                    "The script runs without errors given a valid input.csv and database.",
                    "All valid rows from input.csv are present in the customers table.",
                    "All invalid rows are logged with specific reasons in error.log.",
                    "No database credentials are visible in the source code.",
                ],
                "checklist": [
                    "Read and parse input.csv row by row.",
                    "Define a validation schema for the CSV data.",
                    "Connect to PostgreSQL using environment variables.",
                    "Insert valid rows into the customers table.",
                    "Write errors to error.log.",
                ],
            },
        }
