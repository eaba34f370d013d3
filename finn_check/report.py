"""Markdown report and JSON result rendering."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from finn_check.models import CheckResult, Violation, utc_now

REPORT_TITLE = "# 🛡️ FinnAI Pattern Check"

NEXT_STEPS = [
    "### Next Steps",
    "",
    "Did you mean to introduce these patterns? If not, here's what you can do:",
    "",
    "1. **Fix the violations**: Apply the suggested fixes above",
    (
        "2. **Update patterns**: If this is a new acceptable pattern, "
        "update your FinnAI configuration"
    ),
    (
        "3. **Disable CI/CD check**: If this pattern shouldn't be checked in CI/CD, "
        "update the pattern config"
    ),
    "",
    "Push your fixes and the check will run again automatically.",
    "",
    "---",
    "*Powered by FinnAI*",
]


def render_report(
    violations: Sequence[Violation],
    patterns_checked: int,
    files_checked: int,
    *,
    generated_at: datetime | None = None,
) -> str:
    """Render the review-comment markdown for a completed (or skipped) check."""
    stamp = (generated_at or utc_now()).strftime("%Y-%m-%d %H:%M:%S UTC")
    counts = f"Checked **{files_checked} file(s)** against **{patterns_checked} pattern(s)**."
    lines = [REPORT_TITLE, "", f"*Last updated: {stamp}*", ""]

    if not violations:
        lines.extend(
            [
                "## ✅ No violations found!",
                "",
                counts,
                "",
                "All changes follow the established code patterns. Great work! 🎉",
            ]
        )
        return "\n".join(lines) + "\n"

    lines.extend(
        [
            f"## ⚠️ Found {len(violations)} pattern violation(s)",
            "",
            counts,
            "",
            "### Violations:",
            "",
        ]
    )
    for index, violation in enumerate(violations, start=1):
        lines.extend(
            [
                f"#### {index}. `{violation.file}`",
                "",
                f"**Pattern violated:** {violation.pattern}",
                "",
                f"**Issue:** {violation.issue}",
                "",
                f"**Suggested fix:** {violation.suggested_fix}",
                "",
                "---",
                "",
            ]
        )
    lines.extend(NEXT_STEPS)
    return "\n".join(lines) + "\n"


def render_result_report(result: CheckResult) -> str:
    """Render the markdown report from the same value written as JSON."""
    return render_report(
        result.violations,
        result.patterns_checked,
        result.files_checked,
        generated_at=result.timestamp,
    )


def render_no_patterns_report() -> str:
    return "\n".join(
        [
            REPORT_TITLE,
            "",
            "⚠️ **No patterns found.** Skipping check.",
            "",
            "Add patterns to your FinnAI configuration to enable pattern checking.",
        ]
    ) + "\n"


def render_missing_key_report(env_name: str) -> str:
    return "\n".join(
        [
            REPORT_TITLE,
            "",
            "⚠️ **No API key configured**",
            "",
            f"Set `{env_name}` as a GitHub secret to enable pattern checking.",
        ]
    ) + "\n"


def render_error_report(message: str) -> str:
    return f"{REPORT_TITLE}\n\n❌ **Error**: {message}\n"


def render_result_json(result: CheckResult) -> str:
    return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)


def write_artifacts(
    result: CheckResult, report: str, *, results_path: Path, report_path: Path
) -> None:
    """Write the JSON result and markdown report, once each."""
    for path in (results_path, report_path):
        path.parent.mkdir(parents=True, exist_ok=True)
    results_path.write_text(render_result_json(result), encoding="utf-8")
    report_path.write_text(report, encoding="utf-8")
