"""Configuration loading for finn-check."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from finn_check.git import DEFAULT_EXTENSIONS

CONFIG_FILENAMES = (".finn-check.toml", "finn-check.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("finn_check", "finn-check")

DEFAULT_PATTERNS_FILE = "finn/config/repo-patterns.json"
DEFAULT_RESULTS_FILE = "finn-check-results.json"
DEFAULT_REPORT_FILE = "finn-check-report.md"
DEFAULT_MAX_FILE_CHARS = 5000

BASE_REF_ENV = "GITHUB_BASE_REF"
HEAD_REF_ENV = "GITHUB_SHA"
API_KEY_ENV = "ANTHROPIC_API_KEY"


@dataclass(frozen=True, slots=True)
class ApiConfig:
    """Completion API request settings."""

    url: str = "https://api.anthropic.com/v1/messages"
    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    timeout_seconds: float = 60.0
    version: str = "2023-06-01"

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "model": self.model,
            "max_tokens": self.max_tokens,
            "timeout_seconds": self.timeout_seconds,
            "version": self.version,
        }


@dataclass(frozen=True, slots=True)
class CheckSettings:
    """Everything one run needs, resolved once at the entry point."""

    repo: Path = Path(".")
    patterns_file: str = DEFAULT_PATTERNS_FILE
    results_file: str = DEFAULT_RESULTS_FILE
    report_file: str = DEFAULT_REPORT_FILE
    base_ref: str = "origin/main"
    head_ref: str = "HEAD"
    api_key: str | None = field(default=None, repr=False)
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    max_file_chars: int = DEFAULT_MAX_FILE_CHARS
    api: ApiConfig = field(default_factory=ApiConfig)
    source: str | None = None

    @property
    def patterns_path(self) -> Path:
        return _under(self.repo, self.patterns_file)

    @property
    def results_path(self) -> Path:
        return _under(self.repo, self.results_file)

    @property
    def report_path(self) -> Path:
        return _under(self.repo, self.report_file)

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo": str(self.repo),
            "patterns_file": self.patterns_file,
            "results_file": self.results_file,
            "report_file": self.report_file,
            "base_ref": self.base_ref,
            "head_ref": self.head_ref,
            "api_key": mask_secret(self.api_key),
            "extensions": list(self.extensions),
            "max_file_chars": self.max_file_chars,
            "api": self.api.to_dict(),
            "source": self.source,
        }


def load_settings(
    repo: Path,
    config_path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> CheckSettings:
    """Resolve settings from config files, then apply environment values."""
    repo = repo.resolve()
    mapping, source = _load_config_mapping(repo, config_path)
    settings = _from_mapping(mapping, repo=repo, source=source)
    return apply_environment(settings, os.environ if env is None else env)


def apply_environment(settings: CheckSettings, env: Mapping[str, str]) -> CheckSettings:
    """Fill revision refs and the API key from CI environment variables."""
    base_branch = env.get(BASE_REF_ENV) or "main"
    return replace(
        settings,
        base_ref=f"origin/{base_branch}",
        head_ref=env.get(HEAD_REF_ENV) or "HEAD",
        api_key=env.get(API_KEY_ENV) or None,
    )


def mask_secret(value: str | None) -> str | None:
    if not value:
        return None
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


def _under(repo: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else repo / path


def _load_config_mapping(repo: Path, config_path: Path | None) -> tuple[dict[str, Any], str | None]:
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (repo / config_path)
        if not resolved.exists():
            raise ValueError(f"Config file does not exist: {resolved}")
        return (_extract_config_mapping(_load_toml(resolved), source_path=resolved), str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = repo / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return (mapping, str(resolved))

    pyproject_path = repo / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return (mapping, str(pyproject_path))

    return ({}, None)


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    tool_section = _find_pyproject_tool_section(loaded)
    if source_path.name == PYPROJECT_FILENAME:
        return tool_section if tool_section is not None else {}
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, repo: Path, source: str | None) -> CheckSettings:
    api_mapping = _as_table(mapping.get("api"), "api")
    defaults = CheckSettings()
    extensions = _as_str_list(mapping.get("extensions"), "extensions")

    max_file_chars = _as_int(
        mapping.get("max_file_chars", DEFAULT_MAX_FILE_CHARS), "max_file_chars"
    )
    if max_file_chars <= 0:
        raise ValueError("max_file_chars must be > 0")

    return CheckSettings(
        repo=repo,
        patterns_file=_as_str(mapping.get("patterns_file", defaults.patterns_file), "patterns_file"),
        results_file=_as_str(mapping.get("results_file", defaults.results_file), "results_file"),
        report_file=_as_str(mapping.get("report_file", defaults.report_file), "report_file"),
        extensions=tuple(ext.lstrip(".") for ext in extensions) or DEFAULT_EXTENSIONS,
        max_file_chars=max_file_chars,
        api=_parse_api_config(api_mapping),
        source=source,
    )


def _parse_api_config(value: dict[str, Any]) -> ApiConfig:
    defaults = ApiConfig()
    max_tokens = _as_int(value.get("max_tokens", defaults.max_tokens), "api.max_tokens")
    if max_tokens <= 0:
        raise ValueError("api.max_tokens must be > 0")
    timeout = _as_float(
        value.get("timeout_seconds", defaults.timeout_seconds), "api.timeout_seconds"
    )
    if timeout <= 0:
        raise ValueError("api.timeout_seconds must be > 0")
    return ApiConfig(
        url=_as_str(value.get("url", defaults.url), "api.url"),
        model=_as_str(value.get("model", defaults.model), "api.model"),
        max_tokens=max_tokens,
        timeout_seconds=timeout,
        version=_as_str(value.get("version", defaults.version), "api.version"),
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")
    return value


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{field_name} must be a list of strings")
    return list(value)


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    return value


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{field_name} must be an integer")
    return raw


def _as_float(raw: Any, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    return float(raw)
