"""
Prompt Loading Utilities
========================

Role prompts ship as markdown files inside this package and are loaded by
name (without the .md extension).
"""

from importlib import resources

PROMPTS_PACKAGE = "adforge.prompts"


def _get_prompt_path(name: str):
    return resources.files(PROMPTS_PACKAGE) / f"{name}.md"


def load_prompt(name: str) -> str:
    """
    Load a prompt template from the prompts package.

    Args:
        name: Name of the prompt file (without .md extension)

    Returns:
        Prompt text

    Raises:
        FileNotFoundError: If no prompt of that name ships with the package
    """
    return _get_prompt_path(name).read_text(encoding="utf-8")


def available_prompts() -> list[str]:
    """Names of every bundled prompt."""
    return sorted(
        entry.name[:-3]
        for entry in resources.files(PROMPTS_PACKAGE).iterdir()
        if entry.name.endswith(".md")
    )
