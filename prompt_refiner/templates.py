from __future__ import annotations

import unicodedata
from typing import List, Optional, Tuple

from prompt_refiner.models import TemplateMetadata
from prompt_refiner.rules import PromptRules

DEFAULT_CATEGORY = "general"
DEFAULT_SECTIONS: Tuple[str, ...] = ("Plan", "Risks", "Next actions", "Tests")
GENERIC_RISK = "Review implementation carefully"

# Keywords are accent-free and lowercase; prompts are folded the same way.
# Detection order is significant: the first matching group wins.
TEMPLATE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (
        "software_development",
        ("script", "codigo", "code", "desenvolv", "develop", "program",
         "funcao", "function", "implement", "component"),
    ),
    (
        "data_processing",
        ("dados", "data", "csv", "database", "banco de", "postgres", "sql",
         "etl", "planilha", "spreadsheet"),
    ),
    (
        "automation",
        ("automat", "automac", "cron", "agend", "schedule", "backup",
         "workflow", "pipeline"),
    ),
)

TAG_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("api", ("api", "rest", "endpoint")),
    ("testing", ("test", "unit", "integration", "integracao")),
    ("performance", ("performance", "otimiz", "optimiz", "speed", "latenc", "cache")),
    ("automation", ("script", "automat", "automac", "cron", "agend", "schedule", "backup")),
    ("data", ("dados", "data", "csv", "database", "postgres", "sql", "etl", "banco")),
    ("development", ("criar", "create", "build", "construir", "desenvolv", "develop", "implement")),
)

RISK_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (
        "Sensitive data such as credentials or tokens may be exposed",
        ("password", "senha", "secret", "token", "auth", "credencia", "credential", "jwt"),
    ),
    (
        "Possible performance impact with large data volumes",
        ("loop", "recurs", "grande volume", "large volume", "milh", "million", "bulk", "batch"),
    ),
    (
        "Input data validation is required",
        ("database", "sql", "dados", "data", "csv", "postgres", "valid", "entrada", "input"),
    ),
    (
        "External services may fail or be unavailable",
        ("api", "external", "extern", "terceiro", "third-party", "third party", "webhook", "http"),
    ),
    (
        "Filesystem access requires permission and path handling",
        ("file", "arquivo", "disk", "disco", "director", "diretori", "pasta", "folder", "upload"),
    ),
    (
        "Backup and recovery strategy must be defined",
        ("backup", "restore", "restaur", "recover", "recupera", "rollback", "migra"),
    ),
)

TEMPLATE_ACCEPTANCE = (
    "Solution meets the specified requirements",
    "Code follows quality standards",
    "Tests validate the functionality",
)
TEMPLATE_CHECKLIST = (
    "Implement the proposed solution",
    "Create unit tests",
    "Validate with test data",
    "Document the implementation",
)
DEFAULT_ACCEPTANCE = (
    "Functionality implemented correctly",
    "Tests passing",
    "Documentation updated",
)
DEFAULT_CHECKLIST = ("Review code", "Run tests", "Validate requirements")


def fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _matches(folded: str, keywords: Tuple[str, ...]) -> bool:
    return any(keyword in folded for keyword in keywords)


def dedupe(items: List[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered


class TemplateEngine:
    """Keyword heuristics used whenever the AI backend gives nothing usable.

    Every method is a pure function of its argument and the injected rules,
    so a single engine can be shared by concurrent refinements.
    """

    def __init__(self, rules: PromptRules) -> None:
        self.rules = rules

    def detect_template(self, prompt: str) -> str:
        folded = fold(prompt)
        for category, keywords in TEMPLATE_KEYWORDS:
            if _matches(folded, keywords):
                return category
        return DEFAULT_CATEGORY

    def suggest_tags(self, prompt: str) -> List[str]:
        folded = fold(prompt)
        tags = [tag for tag in self.rules.common_tags if fold(tag) in folded]
        tags.extend(tag for tag, keywords in TAG_RULES if _matches(folded, keywords))
        return dedupe(tags)

    def identify_risks(self, prompt: str) -> List[str]:
        folded = fold(prompt)
        risks = [advisory for advisory, keywords in RISK_RULES if _matches(folded, keywords)]
        return risks or [GENERIC_RISK]

    def get_template_metadata(self, category: str) -> TemplateMetadata:
        template = self.rules.templates.get(category)
        if template is None:
            return TemplateMetadata(
                sections=list(DEFAULT_SECTIONS),
                acceptance_criteria=list(DEFAULT_ACCEPTANCE),
                checklist=list(DEFAULT_CHECKLIST),
            )
        return TemplateMetadata(
            sections=list(template.sections or DEFAULT_SECTIONS),
            acceptance_criteria=list(TEMPLATE_ACCEPTANCE),
            checklist=list(TEMPLATE_CHECKLIST),
        )

    def format_system_prompt(self, context: Optional[str] = None) -> str:
        system_prompt = self.rules.main_refiner
        if context:
            system_prompt += f"\n\nCONTEXT:\n{context}"
        return system_prompt
