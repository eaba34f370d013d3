"""Violation checker: snapshots, request shape, response decoding."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from finn_check.checker import (
    TRUNCATION_MARKER,
    AnthropicClient,
    build_prompt,
    check_violations,
    parse_violations,
    read_snapshots,
    strip_code_fence,
)
from finn_check.errors import ApiError, ApiKeyMissingError, ApiResponseParseError
from finn_check.models import Violation
from finn_check.patterns import Pattern
from tests.helpers_api import (
    FakeClient,
    messages_body,
    mock_client,
    replying_with,
    violations_text,
)

PATTERN = Pattern(name="p", norm="rule", description="desc", quality="positive")
EXPECTED = [Violation(file="a.js", pattern="p", issue="i", suggested_fix="f")]


def test_long_file_is_cut_to_limit_plus_marker(tmp_path: Path) -> None:
    (tmp_path / "big.py").write_text("a" * 5000 + "TAIL-BEYOND-LIMIT", encoding="utf-8")
    (tmp_path / "small.py").write_text("x = 1\n", encoding="utf-8")

    big, small = read_snapshots(tmp_path, ["big.py", "small.py"])
    assert big.content == "a" * 5000 + TRUNCATION_MARKER
    assert len(big.content) == 5000 + len(TRUNCATION_MARKER)
    assert small.content == "x = 1\n"

    fake = FakeClient()
    check_violations(repo=tmp_path, files=["big.py"], patterns=[PATTERN], client=fake)
    [prompt] = fake.prompts
    assert "TAIL-BEYOND-LIMIT" not in prompt
    assert "(truncated)" in prompt


def test_file_of_exactly_limit_is_not_marked(tmp_path: Path) -> None:
    (tmp_path / "edge.py").write_text("b" * 5000, encoding="utf-8")
    [snapshot] = read_snapshots(tmp_path, ["edge.py"])
    assert snapshot.content == "b" * 5000


def test_unreadable_files_are_dropped_silently(tmp_path: Path) -> None:
    (tmp_path / "ok.py").write_text("ok = True\n", encoding="utf-8")
    (tmp_path / "binary.py").write_bytes(b"\xff\xfe\x00\x81")
    (tmp_path / "folder.py").mkdir()

    snapshots = read_snapshots(tmp_path, ["deleted.py", "binary.py", "folder.py", "ok.py"])
    assert [snapshot.path for snapshot in snapshots] == ["ok.py"]


def test_no_readable_files_skips_the_api_call(tmp_path: Path) -> None:
    client, requests = mock_client(replying_with(violations_text()))
    result = check_violations(
        repo=tmp_path, files=["gone.js", "also-gone.py"], patterns=[PATTERN], client=client
    )
    assert result == []
    assert requests == []


def test_prompt_embeds_stripped_patterns_and_snapshots(tmp_path: Path) -> None:
    (tmp_path / "a.js").write_text("var x = 1;\n", encoding="utf-8")
    [snapshot] = read_snapshots(tmp_path, ["a.js"])
    pattern = Pattern(
        name="no_var",
        norm="Use const/let",
        description="Avoid var declarations.",
        category="best_practice",
        quality="positive",
    )

    prompt = build_prompt([pattern], [snapshot])
    assert json.dumps([pattern.to_prompt_dict()], indent=2) in prompt
    assert json.dumps([{"path": "a.js", "content": "var x = 1;\n"}], indent=2) in prompt
    assert '"quality"' not in prompt
    assert '"cicd_enabled"' not in prompt
    assert 'If no violations, return: { "violations": [] }' in prompt


def test_client_sends_one_messages_request(tmp_path: Path) -> None:
    (tmp_path / "a.js").write_text("let a = 1;\n", encoding="utf-8")
    client, requests = mock_client(replying_with(violations_text()))

    result = check_violations(repo=tmp_path, files=["a.js"], patterns=[PATTERN], client=client)

    assert result == EXPECTED
    [request] = requests
    assert request.method == "POST"
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-test-key"
    assert request.headers["anthropic-version"] == "2023-06-01"
    body = json.loads(request.content)
    assert body["model"] == "claude-sonnet-4-5-20250929"
    assert body["max_tokens"] == 4096
    assert [message["role"] for message in body["messages"]] == ["user"]
    assert "let a = 1;" in body["messages"][0]["content"]


@pytest.mark.parametrize(
    "text",
    [
        violations_text(),
        f"```json\n{violations_text()}\n```",
        f"```JSON\n{violations_text()}\n```",
        f"```\n{violations_text()}\n```",
        f"  \n```json {violations_text()}```  \n",
    ],
)
def test_fenced_and_bare_responses_parse_identically(text: str) -> None:
    assert parse_violations(text) == EXPECTED


def test_missing_violations_key_means_no_violations() -> None:
    assert parse_violations('{"summary": "clean"}') == []


def test_null_violations_means_no_violations() -> None:
    assert parse_violations('{"violations": null}') == []


@pytest.mark.parametrize(
    "text",
    [
        "I found no problems.",
        "```json\n{\"violations\": []}\n``` trailing prose",
        "[]",
        '{"violations": {"file": "a.js"}}',
        '{"violations": [{"file": "a.js", "pattern": "p", "issue": "i"}]}',
        '{"violations": [{"file": 1, "pattern": "p", "issue": "i", "suggested_fix": "f"}]}',
    ],
)
def test_deviating_responses_raise_parse_error(text: str) -> None:
    with pytest.raises(ApiResponseParseError):
        parse_violations(text)


def test_strip_code_fence_only_touches_outer_fences() -> None:
    assert strip_code_fence('```json\n{"a": "```"}\n```') == '{"a": "```"}'
    assert strip_code_fence('{"a": 1}') == '{"a": 1}'


def test_missing_api_key_is_rejected_before_any_request() -> None:
    with pytest.raises(ApiKeyMissingError):
        AnthropicClient(None)
    with pytest.raises(ApiKeyMissingError):
        AnthropicClient("")


def test_error_body_is_surfaced_as_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            401,
            json={"type": "error", "error": {"type": "authentication_error", "message": "bad key"}},
        )

    client, _requests = mock_client(handler)
    with pytest.raises(ApiError, match="bad key") as excinfo:
        client.complete("prompt")
    assert not isinstance(excinfo.value, ApiResponseParseError)


def test_non_2xx_without_error_body_is_api_error() -> None:
    client, _requests = mock_client(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(ApiError):
        client.complete("prompt")

    client, _requests = mock_client(lambda request: httpx.Response(500, json={"detail": "x"}))
    with pytest.raises(ApiError, match="HTTP 500"):
        client.complete("prompt")


def test_network_failure_is_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _requests = mock_client(handler)
    with pytest.raises(ApiError, match="connection refused"):
        client.complete("prompt")


def test_timeout_is_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    client, _requests = mock_client(handler)
    with pytest.raises(ApiError, match="timed out after 60s"):
        client.complete("prompt")


def test_unexpected_envelope_is_parse_error() -> None:
    client, _requests = mock_client(lambda request: httpx.Response(200, json={"content": []}))
    with pytest.raises(ApiResponseParseError):
        client.complete("prompt")


def test_completion_text_is_returned_verbatim() -> None:
    client, _requests = mock_client(
        lambda request: httpx.Response(200, json=messages_body("```json\n{}\n```"))
    )
    assert client.complete("prompt") == "```json\n{}\n```"
