"""Fixed category taxonomy: 7 categories, 4 subcategories each."""

from __future__ import annotations

from collections.abc import Iterator

from smartctx.errors import TaxonomyError

CATEGORY_TAXONOMY: dict[str, tuple[str, ...]] = {
    "PROJECT_RULES": (
        "coding_standards",
        "architecture_decisions",
        "naming_conventions",
        "business_logic",
    ),
    "DECISIONS": (
        "technical_choices",
        "tool_selections",
        "implementation_strategies",
        "design_patterns",
    ),
    "SOLUTIONS": (
        "common_problems",
        "bug_fixes",
        "optimization_techniques",
        "integration_patterns",
    ),
    "FAILED_ATTEMPTS": (
        "approaches_that_failed",
        "antipatterns",
        "known_limitations",
        "error_prone_methods",
    ),
    "TROUBLESHOOTING": (
        "error_resolutions",
        "debugging_strategies",
        "common_issues",
        "diagnostic_techniques",
    ),
    "BEST_PRACTICES": (
        "performance_tips",
        "security_guidelines",
        "maintainability_rules",
        "testing_strategies",
    ),
    "KNOWLEDGE": (
        "domain_expertise",
        "tool_knowledge",
        "framework_specifics",
        "integration_knowledge",
    ),
}

# Short descriptions used in README files and extraction prompts.
CATEGORY_DESCRIPTIONS: dict[str, str] = {
    "PROJECT_RULES": "what we must follow",
    "DECISIONS": "what we chose and why",
    "SOLUTIONS": "what worked",
    "FAILED_ATTEMPTS": "what didn't work",
    "TROUBLESHOOTING": "how to fix problems",
    "BEST_PRACTICES": "how to do it right",
    "KNOWLEDGE": "what we learned",
}


def is_valid(category: str, subcategory: str) -> bool:
    return subcategory in CATEGORY_TAXONOMY.get(category, ())


def check(category: str, subcategory: str | None = None) -> None:
    """Raise TaxonomyError unless the pair (or bare category) is a member."""
    if category not in CATEGORY_TAXONOMY:
        raise TaxonomyError(f"Unknown category: {category!r}")
    if subcategory is not None and subcategory not in CATEGORY_TAXONOMY[category]:
        raise TaxonomyError(f"Unknown subcategory for {category}: {subcategory!r}")


def bucket_key(category: str, subcategory: str) -> str:
    return f"{category}/{subcategory}"


def iter_buckets() -> Iterator[tuple[str, str]]:
    """Yield every (category, subcategory) pair in taxonomy order."""
    for category, subcategories in CATEGORY_TAXONOMY.items():
        for subcategory in subcategories:
            yield category, subcategory


def describe_for_prompt() -> str:
    """Render the taxonomy as a prompt-friendly listing."""
    blocks = []
    for category, subcategories in CATEGORY_TAXONOMY.items():
        blocks.append(
            f"{category} ({CATEGORY_DESCRIPTIONS[category]}):\n- " + ", ".join(subcategories)
        )
    return "\n\n".join(blocks)
