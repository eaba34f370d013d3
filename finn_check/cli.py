"""CLI entrypoint for finn-check."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Literal

import typer

from finn_check import __version__
from finn_check.checker import build_prompt, read_snapshots
from finn_check.config import CheckSettings, load_settings
from finn_check.errors import ConfigParseError, ErrorKind
from finn_check.git import resolve_change_set
from finn_check.patterns import enforceable_patterns, load_patterns
from finn_check.pipeline import CheckOutcome, error_outcome, run_check
from finn_check.report import write_artifacts

app = typer.Typer(
    name="finn-check",
    no_args_is_help=True,
    help="Check pull request changes against repository patterns.",
)

_SKIP_MESSAGES = {
    ErrorKind.CONFIG_MISSING: "No patterns found. Skipping check.",
    ErrorKind.NO_ENFORCEABLE_PATTERNS: "No patterns enabled for CI/CD checks.",
    ErrorKind.NO_CHANGED_FILES: "No relevant files changed.",
    ErrorKind.API_KEY_MISSING: (
        "No Anthropic API key found. "
        "Set ANTHROPIC_API_KEY as a GitHub secret to enable pattern checking."
    ),
}


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
) -> None:
    """Root command callback."""
    _ = version


@app.command("check")
def check_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    patterns: Annotated[
        str | None, typer.Option("--patterns", help="Path to the pattern JSON file.")
    ] = None,
    base: Annotated[str | None, typer.Option(help="Base git revision.")] = None,
    head: Annotated[str | None, typer.Option(help="Head git revision.")] = None,
    results: Annotated[
        str | None, typer.Option("--results", help="Where to write the JSON result.")
    ] = None,
    report: Annotated[
        str | None, typer.Option("--report", help="Where to write the markdown report.")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Check changed files for pattern violations.

    Exits 1 only when violations are found; every other failure degrades to
    an error-annotated result and exit code 0.
    """
    _configure_logging(verbose)
    typer.echo("FinnAI Pattern Check")

    try:
        settings = load_settings(repo, config_path=config_file)
    except (ValueError, OSError) as exc:
        settings = CheckSettings(repo=repo.resolve())
        settings = _with_overrides(settings, patterns, base, head, results, report)
        outcome = error_outcome(str(exc), kind=ErrorKind.CONFIG_PARSE)
        _write_best_effort(outcome, settings)
        _echo_outcome(outcome)
        return

    settings = _with_overrides(settings, patterns, base, head, results, report)
    try:
        outcome = run_check(settings)
    except Exception as exc:
        outcome = error_outcome(str(exc) or type(exc).__name__)
        _write_best_effort(outcome, settings)

    _echo_outcome(outcome)
    if outcome.exit_code:
        raise typer.Exit(code=outcome.exit_code)


@app.command("patterns")
def patterns_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """List configured patterns and whether CI enforces them."""
    output_format = _output_format(format)
    settings = _load_settings_or_raise(repo, config_file)
    try:
        loaded = load_patterns(settings.patterns_path)
    except ConfigParseError as exc:
        raise typer.BadParameter(str(exc), param_hint="patterns") from exc
    loaded = loaded or []

    if output_format == "json":
        payload = {
            "patterns": [pattern.to_dict() for pattern in loaded],
            "meta": {"patterns_file": str(settings.patterns_path)},
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    if not loaded:
        typer.echo(f"No patterns found in {settings.patterns_path}")
        return
    lines = ["Configured patterns:"]
    for pattern in loaded:
        status = "enforced" if pattern.enforceable else "not enforced"
        lines.append(f"- {pattern.name} [{status}] - {pattern.norm or pattern.description}")
    typer.echo("\n".join(lines))


@app.command("prompt")
def prompt_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    base: Annotated[str | None, typer.Option(help="Base git revision.")] = None,
    head: Annotated[str | None, typer.Option(help="Head git revision.")] = None,
    format: Annotated[
        Literal["markdown", "json"],
        typer.Option(help="Output format."),
    ] = "markdown",
) -> None:
    """Print the request prompt for the current change set (no API calls)."""
    settings = _with_overrides(
        _load_settings_or_raise(repo, config_file), None, base, head, None, None
    )
    try:
        loaded = load_patterns(settings.patterns_path)
    except ConfigParseError as exc:
        raise typer.BadParameter(str(exc), param_hint="patterns") from exc
    enforced = enforceable_patterns(loaded or [])

    changed_files = resolve_change_set(
        settings.repo, settings.base_ref, settings.head_ref, extensions=settings.extensions
    )
    snapshots = read_snapshots(settings.repo, changed_files, max_chars=settings.max_file_chars)
    prompt = build_prompt(enforced, snapshots)

    if format == "markdown":
        typer.echo(prompt)
        return

    payload = {
        "prompt": prompt,
        "meta": {
            "patterns": [pattern.name for pattern in enforced],
            "files": [snapshot.path for snapshot in snapshots],
            "base": settings.base_ref,
            "head": settings.head_ref,
        },
    }
    typer.echo(json.dumps(payload, sort_keys=True))


@app.command("config")
def config_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Show resolved configuration."""
    output_format = _output_format(format)
    payload = _load_settings_or_raise(repo, config_file).to_dict()

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- patterns_file: {payload['patterns_file']}",
        f"- results_file: {payload['results_file']}",
        f"- report_file: {payload['report_file']}",
        f"- base_ref: {payload['base_ref']}",
        f"- head_ref: {payload['head_ref']}",
        f"- api_key: {payload['api_key'] or 'not set'}",
        f"- extensions: {payload['extensions']}",
        f"- max_file_chars: {payload['max_file_chars']}",
        f"- api.model: {payload['api']['model']}",
        f"- api.timeout_seconds: {payload['api']['timeout_seconds']}",
    ]
    typer.echo("\n".join(lines))


def main() -> None:
    """Console script entrypoint."""
    app()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _output_format(value: str) -> str:
    output_format = value.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")
    return output_format


def _load_settings_or_raise(repo: Path, config_file: Path | None) -> CheckSettings:
    try:
        return load_settings(repo, config_path=config_file)
    except (ValueError, OSError) as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _with_overrides(
    settings: CheckSettings,
    patterns: str | None,
    base: str | None,
    head: str | None,
    results: str | None,
    report: str | None,
) -> CheckSettings:
    return replace(
        settings,
        patterns_file=patterns or settings.patterns_file,
        base_ref=base or settings.base_ref,
        head_ref=head or settings.head_ref,
        results_file=results or settings.results_file,
        report_file=report or settings.report_file,
    )


def _write_best_effort(outcome: CheckOutcome, settings: CheckSettings) -> None:
    try:
        write_artifacts(
            outcome.result,
            outcome.report,
            results_path=settings.results_path,
            report_path=settings.report_path,
        )
    except OSError as exc:
        typer.echo(f"warning: could not write check artifacts: {exc}", err=True)


def _echo_outcome(outcome: CheckOutcome) -> None:
    result = outcome.result
    if outcome.skipped in _SKIP_MESSAGES:
        typer.echo(_SKIP_MESSAGES[outcome.skipped])
        return
    if result.error is not None:
        typer.echo(f"error: {result.error}", err=True)
        return
    if not result.violations:
        typer.echo(
            f"No pattern violations found in {result.files_checked} file(s) "
            f"against {result.patterns_checked} pattern(s)."
        )
        return

    lines = [f"Found {len(result.violations)} pattern violation(s)", ""]
    for index, violation in enumerate(result.violations, start=1):
        lines.extend(
            [
                f"{index}. {violation.file}",
                f"   Pattern: {violation.pattern}",
                f"   Issue: {violation.issue}",
                f"   Fix: {violation.suggested_fix}",
                "",
            ]
        )
    lines.append("See PR comment for detailed report")
    typer.echo("\n".join(lines))
