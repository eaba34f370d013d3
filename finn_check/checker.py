"""Violation checks delegated to a hosted completion API.

One run sends a single request: the enforceable patterns and the (size
capped) contents of the changed files go out, a JSON object of violations
comes back. There is no retry, streaming or pagination.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from finn_check.config import ApiConfig
from finn_check.errors import ApiError, ApiKeyMissingError, ApiResponseParseError
from finn_check.models import FileSnapshot, Violation, ViolationsPayload
from finn_check.patterns import Pattern

logger = logging.getLogger(__name__)

MAX_FILE_CHARS = 5000
TRUNCATION_MARKER = "\n... (truncated)"

_LEADING_FENCE_RE = re.compile(r"\A```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE_RE = re.compile(r"\s*```\Z")

PROMPT_TEMPLATE = """\
You are a code quality assistant checking for pattern violations in a pull request.

Repository patterns to enforce (positive and neutral patterns only):
{patterns_json}

Changed files to check:
{files_json}

Task: Check if any of the changed files violate the established patterns.

ONLY report violations of POSITIVE or NEUTRAL patterns (patterns the codebase should follow).
Do NOT report issues with code that follows the patterns correctly.

Output format (ONLY JSON, no markdown):
{{
  "violations": [
    {{
      "file": "path/to/file.js",
      "pattern": "pattern_name",
      "issue": "Brief description of violation",
      "suggested_fix": "How to fix it"
    }}
  ]
}}

If no violations, return: {{ "violations": [] }}"""


class CompletionClient(Protocol):
    """Anything that turns one prompt into one completion text."""

    def complete(self, prompt: str) -> str:
        """Return the text of the model's reply."""


class AnthropicClient:
    """Synchronous client for the Anthropic messages endpoint."""

    def __init__(
        self,
        api_key: str | None,
        api: ApiConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ApiKeyMissingError("No API key configured")
        self._api_key = api_key
        self._api = api or ApiConfig()
        self._transport = transport

    def build_request_body(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self._api.model,
            "max_tokens": self._api.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

    def complete(self, prompt: str) -> str:
        headers = {
            "content-type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": self._api.version,
        }
        logger.debug("POST %s (model=%s)", self._api.url, self._api.model)
        try:
            with httpx.Client(
                timeout=self._api.timeout_seconds, transport=self._transport
            ) as client:
                response = client.post(
                    self._api.url, json=self.build_request_body(prompt), headers=headers
                )
        except httpx.TimeoutException as exc:
            raise ApiError(
                f"Completion API timed out after {self._api.timeout_seconds:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ApiError(f"Completion API request failed: {exc}") from exc

        return extract_completion_text(response)


def extract_completion_text(response: httpx.Response) -> str:
    """Pull ``content[0].text`` out of a messages API response."""
    try:
        body = response.json()
    except ValueError as exc:
        raise ApiError(
            f"Completion API returned non-JSON body (HTTP {response.status_code})"
        ) from exc

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message") or "unknown error"
        raise ApiError(f"Completion API error: {message}")
    if response.is_error:
        raise ApiError(f"Completion API returned HTTP {response.status_code}")

    try:
        text = body["content"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ApiResponseParseError(
            "Failed to parse API response: missing content[0].text"
        ) from exc
    if not isinstance(text, str):
        raise ApiResponseParseError("Failed to parse API response: content[0].text is not text")
    return text


def strip_code_fence(text: str) -> str:
    """Remove an optional leading ```json (or bare ```) and trailing fence."""
    stripped = text.strip()
    stripped = _LEADING_FENCE_RE.sub("", stripped, count=1)
    stripped = _TRAILING_FENCE_RE.sub("", stripped, count=1)
    return stripped


def parse_violations(text: str) -> list[Violation]:
    """Decode the completion text into violations.

    Anything that is not a JSON object with a well-formed ``violations`` list
    raises ``ApiResponseParseError``. A missing or null ``violations`` key is
    read as no violations.
    """
    try:
        payload = ViolationsPayload.model_validate_json(strip_code_fence(text))
    except ValidationError as exc:
        raise ApiResponseParseError(f"Failed to parse API response: {exc}") from exc
    return list(payload.violations or [])


def truncate_content(content: str, *, max_chars: int = MAX_FILE_CHARS) -> str:
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + TRUNCATION_MARKER


def read_snapshots(
    repo: Path, paths: Iterable[str], *, max_chars: int = MAX_FILE_CHARS
) -> list[FileSnapshot]:
    """Read changed files from the working tree, skipping unreadable ones."""
    snapshots: list[FileSnapshot] = []
    for path in paths:
        try:
            content = (repo / path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Skipping unreadable file %s: %s", path, exc)
            continue
        snapshots.append(
            FileSnapshot(path=path, content=truncate_content(content, max_chars=max_chars))
        )
    return snapshots


def build_prompt(patterns: list[Pattern], snapshots: list[FileSnapshot]) -> str:
    patterns_json = json.dumps(
        [pattern.to_prompt_dict() for pattern in patterns], indent=2, ensure_ascii=False
    )
    files_json = json.dumps(
        [snapshot.to_dict() for snapshot in snapshots], indent=2, ensure_ascii=False
    )
    return PROMPT_TEMPLATE.format(patterns_json=patterns_json, files_json=files_json)


def check_violations(
    *,
    repo: Path,
    files: list[str],
    patterns: list[Pattern],
    client: CompletionClient,
    max_chars: int = MAX_FILE_CHARS,
) -> list[Violation]:
    """Ask the completion API which changed files break which patterns."""
    snapshots = read_snapshots(repo, files, max_chars=max_chars)
    if not snapshots:
        logger.info("No readable files among %d changed file(s); skipping API call", len(files))
        return []

    prompt = build_prompt(patterns, snapshots)
    logger.debug("Sending %d file(s) and %d pattern(s)", len(snapshots), len(patterns))
    return parse_violations(client.complete(prompt))
