"""Model family rules used for fallback selection."""

import re

DEFAULT_FAMILY = "gpt-4o"

# Generic vendor literal preferred when nothing closer is available
GENERIC_FAMILY_LITERAL = "gpt"

# (substring, family) checked in order; more specific first
FAMILY_LITERALS: list[tuple[str, str]] = [
    ("gpt-4o", "gpt-4o"),
    ("gpt-4", "gpt-4"),
    ("gpt-3.5", "gpt-3.5-turbo"),
    ("claude-3", "claude-3"),
    ("claude", "claude"),
    ("gemini", "gemini"),
]

FAMILY_PATTERNS = [
    re.compile(r"^(gpt-[\d.]+[a-z]*)", re.IGNORECASE),
    re.compile(r"^(claude-[\d.]+[a-z]*)", re.IGNORECASE),
    re.compile(r"^(gemini[a-z-]*)", re.IGNORECASE),
]


def extract_family(model_id: str | None) -> str | None:
    """Derive a model family from a model id, or None if unrecognized."""
    if not model_id:
        return None

    for literal, family in FAMILY_LITERALS:
        if literal in model_id:
            return family

    for pattern in FAMILY_PATTERNS:
        match = pattern.match(model_id)
        if match:
            return match.group(1)

    return None


def in_family(model_id: str, model_family: str, family: str) -> bool:
    """Whether a registry entry belongs to a family."""
    return model_family == family or family in model_id
