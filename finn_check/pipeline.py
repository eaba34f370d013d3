"""Check run orchestration.

Each stage raises; this module is the only place that turns failures into
degraded artifacts. Only genuine violations produce a non-zero exit code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from finn_check.checker import AnthropicClient, CompletionClient, check_violations
from finn_check.config import API_KEY_ENV, CheckSettings
from finn_check.errors import ApiKeyMissingError, CheckError, ErrorKind
from finn_check.git import resolve_change_set
from finn_check.models import CheckResult, utc_now
from finn_check.patterns import enforceable_patterns, load_patterns
from finn_check.report import (
    render_error_report,
    render_missing_key_report,
    render_no_patterns_report,
    render_report,
    render_result_report,
    write_artifacts,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_VIOLATIONS = 1


@dataclass(frozen=True, slots=True)
class CheckOutcome:
    """Artifacts produced by one run and the process exit code."""

    result: CheckResult
    report: str
    exit_code: int = EXIT_OK
    skipped: ErrorKind | None = None


def run_check(settings: CheckSettings, client: CompletionClient | None = None) -> CheckOutcome:
    """Run the check and write both artifacts."""
    try:
        outcome = _run(settings, client)
    except ApiKeyMissingError:
        outcome = CheckOutcome(
            result=CheckResult(error="No API key configured"),
            report=render_missing_key_report(API_KEY_ENV),
            skipped=ErrorKind.API_KEY_MISSING,
        )
    except CheckError as exc:
        logger.warning("Pattern check degraded (%s): %s", exc.kind.value, exc)
        outcome = error_outcome(str(exc), kind=exc.kind)

    write_artifacts(
        outcome.result,
        outcome.report,
        results_path=settings.results_path,
        report_path=settings.report_path,
    )
    return outcome


def error_outcome(message: str, *, kind: ErrorKind = ErrorKind.API) -> CheckOutcome:
    return CheckOutcome(
        result=CheckResult(error=message),
        report=render_error_report(message),
        skipped=kind,
    )


def _run(settings: CheckSettings, client: CompletionClient | None) -> CheckOutcome:
    patterns = load_patterns(settings.patterns_path)
    if patterns is None:
        logger.info("No pattern file at %s", settings.patterns_path)
        return CheckOutcome(
            result=CheckResult(),
            report=render_no_patterns_report(),
            skipped=ErrorKind.CONFIG_MISSING,
        )

    enforced = enforceable_patterns(patterns)
    if not enforced:
        return CheckOutcome(
            result=CheckResult(),
            report=render_report([], 0, 0),
            skipped=ErrorKind.NO_ENFORCEABLE_PATTERNS,
        )

    changed_files = resolve_change_set(
        settings.repo,
        settings.base_ref,
        settings.head_ref,
        extensions=settings.extensions,
    )
    if not changed_files:
        return CheckOutcome(
            result=CheckResult(patterns_checked=len(enforced)),
            report=render_report([], len(enforced), 0),
            skipped=ErrorKind.NO_CHANGED_FILES,
        )

    if client is None:
        client = AnthropicClient(settings.api_key, settings.api)

    violations = check_violations(
        repo=settings.repo,
        files=changed_files,
        patterns=enforced,
        client=client,
        max_chars=settings.max_file_chars,
    )
    result = CheckResult(
        violations=tuple(violations),
        patterns_checked=len(enforced),
        files_checked=len(changed_files),
        timestamp=utc_now(),
    )
    return CheckOutcome(
        result=result,
        report=render_result_report(result),
        exit_code=EXIT_VIOLATIONS if violations else EXIT_OK,
    )
