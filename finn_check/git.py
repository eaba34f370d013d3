"""Git subprocess helpers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from subprocess import CalledProcessError, run

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when git command execution fails."""


DEFAULT_EXTENSIONS = ("js", "jsx", "ts", "tsx", "py", "rb")


def get_changed_paths(repo: Path, base: str, head: str) -> list[str]:
    """Return paths that differ between the merge base of ``base`` and ``head``."""
    output = _run_git(
        repo, ["-c", "core.quotePath=false", "diff", "--name-only", f"{base}...{head}"]
    )
    return [line.strip() for line in output.splitlines() if line.strip()]


def resolve_change_set(
    repo: Path,
    base: str,
    head: str,
    *,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
) -> list[str]:
    """Return sorted changed paths with an allowed extension.

    A failing diff (unknown refs, shallow clone, missing git) is treated as
    an empty change set.
    """
    try:
        paths = get_changed_paths(repo, base, head)
    except GitError as exc:
        logger.warning("Could not get changed files: %s", exc)
        return []
    return filter_by_extension(paths, extensions)


def filter_by_extension(paths: Iterable[str], extensions: Iterable[str]) -> list[str]:
    """Keep paths whose final suffix is in ``extensions``; dedupe and sort."""
    allowed = {ext.lower().lstrip(".") for ext in extensions}
    kept = {path for path in paths if Path(path).suffix[1:] in allowed}
    return sorted(kept)


def _run_git(repo: Path, args: list[str]) -> str:
    try:
        completed = run(
            ["git", *args],
            cwd=repo,
            check=True,
            capture_output=True,
            text=True,
            encoding="utf-8",
        )
    except CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise GitError(stderr or f"git {' '.join(args)} failed") from exc
    except OSError as exc:
        raise GitError(f"git {' '.join(args)} failed: {exc}") from exc

    return completed.stdout
