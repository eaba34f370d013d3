"""Pattern document loading and CI enforcement filtering."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from finn_check.errors import ConfigParseError

PATTERNS_KEY = "repo_patterns"
ENFORCEABLE_QUALITIES = {"positive", "neutral"}


@dataclass(frozen=True, slots=True)
class Pattern:
    """A named coding rule the repository follows (or avoids)."""

    name: str
    norm: str = ""
    description: str = ""
    category: str | None = None
    quality: str | None = None
    cicd_enabled: bool = True

    @property
    def enforceable(self) -> bool:
        """Whether CI should check changed files against this pattern.

        Quality matches case-sensitively, so ``"Positive"`` is not enforced.
        """
        return self.quality in ENFORCEABLE_QUALITIES and self.cicd_enabled

    def to_prompt_dict(self) -> dict[str, str]:
        return {"name": self.name, "norm": self.norm, "description": self.description}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "norm": self.norm,
            "description": self.description,
            "category": self.category,
            "quality": self.quality,
            "cicd_enabled": self.cicd_enabled,
            "enforceable": self.enforceable,
        }


def load_patterns(path: Path) -> list[Pattern] | None:
    """Load every pattern from ``path``.

    Returns ``None`` when the file does not exist. Raises ``ConfigParseError``
    for malformed JSON or fields of the wrong type.
    """
    if not path.is_file():
        return None
    try:
        loaded = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigParseError(f"Invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigParseError(f"Could not read {path}: {exc}") from exc
    return parse_patterns(loaded)


def parse_patterns(document: Any) -> list[Pattern]:
    """Build patterns from an already decoded JSON document."""
    if not isinstance(document, dict):
        raise ConfigParseError("pattern document must be a JSON object")
    raw_patterns = document.get(PATTERNS_KEY)
    if raw_patterns is None:
        return []
    if not isinstance(raw_patterns, list):
        raise ConfigParseError(f"{PATTERNS_KEY} must be a list")
    return [
        _parse_pattern(item, f"{PATTERNS_KEY}[{index}]")
        for index, item in enumerate(raw_patterns)
    ]


def enforceable_patterns(patterns: list[Pattern]) -> list[Pattern]:
    """Filter to positive or neutral patterns that have not opted out of CI."""
    return [pattern for pattern in patterns if pattern.enforceable]


def _parse_pattern(value: Any, field_name: str) -> Pattern:
    if not isinstance(value, dict):
        raise ConfigParseError(f"{field_name} must be an object")

    category = value.get("category")
    quality_table = value.get("quality")
    if quality_table is None:
        quality = None
    elif isinstance(quality_table, dict):
        quality = _as_optional_str(
            quality_table.get("category"), f"{field_name}.quality.category"
        )
    else:
        raise ConfigParseError(f"{field_name}.quality must be an object")

    cicd_enabled = value.get("cicd_enabled", True)
    if not isinstance(cicd_enabled, bool):
        raise ConfigParseError(f"{field_name}.cicd_enabled must be a boolean")

    return Pattern(
        name=_as_str(value.get("name"), f"{field_name}.name"),
        norm=_as_text(value.get("norm")),
        description=_as_text(value.get("description")),
        category=category if isinstance(category, str) else None,
        quality=quality,
        cicd_enabled=cicd_enabled,
    )


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ConfigParseError(f"{field_name} must be a string")
    return value


def _as_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, field_name)


def _as_text(value: Any) -> str:
    # Free text only feeds the prompt; null reads as empty.
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)
