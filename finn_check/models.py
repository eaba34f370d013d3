"""Violation and result models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class Violation(BaseModel):
    """A changed file breaking an enforceable pattern, as reported by the model."""

    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")

    file: str
    pattern: str
    issue: str
    suggested_fix: str


class ViolationsPayload(BaseModel):
    """The JSON object the completion is instructed to return."""

    model_config = ConfigDict(strict=True, extra="ignore")

    violations: list[Violation] | None = None


@dataclass(frozen=True, slots=True)
class FileSnapshot:
    """Possibly truncated content of one changed file."""

    path: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "content": self.content}


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Machine-readable outcome of one run."""

    violations: tuple[Violation, ...] = ()
    patterns_checked: int = 0
    files_checked: int = 0
    timestamp: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.error is not None:
            payload["error"] = self.error
        payload["violations"] = [violation.model_dump() for violation in self.violations]
        payload["patterns_checked"] = self.patterns_checked
        payload["files_checked"] = self.files_checked
        if self.timestamp is not None:
            payload["timestamp"] = format_timestamp(self.timestamp)
        return payload


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
