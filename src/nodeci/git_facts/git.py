# git.py
# Small wrapper around the Git CLI.
# The rest of the codebase never calls subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError if git exits non-zero,
        FileNotFoundError if git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: Optional[str] = None) -> str:
    """Full SHA of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def get_current_ref(cwd: Optional[str] = None) -> str:
    """
    Current branch name (e.g. "feature-x").

    A detached HEAD has no branch; the short SHA is returned instead.
    """
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if ref == "HEAD":
        return _git(["rev-parse", "--short", "HEAD"], cwd=cwd)
    return ref


def get_remote_url(remote: str = "origin", cwd: Optional[str] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)


def repository_slug(url: str) -> str:
    """
    "owner/name" from a remote URL.

        git@github.com:owner/name.git     -> owner/name
        https://github.com/owner/name.git -> owner/name
    """
    tail = url.rstrip("/")
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    tail = tail.replace(":", "/")
    parts = [p for p in tail.split("/") if p]
    return "/".join(parts[-2:])
