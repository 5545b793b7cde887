# gh.py
# Thin wrapper around the GitHub CLI for cache management.
# Everything that shells out to `gh` lives here.

from __future__ import annotations

import json
import os
import subprocess
from typing import List, Optional

from .errors import CacheCommandError


class GhCacheCli:
    """
    Cache backend backed by `gh cache`.

    Entries are scoped by full ref (refs/heads/<branch>); callers pass the
    bare branch name, same as for the local CacheStore.
    """

    def __init__(self, repository: str, token: Optional[str] = None, gh: str = "gh"):
        self.repository = repository
        self.token = token
        self.gh = gh

    def _env(self) -> dict:
        env = os.environ.copy()
        if self.token:
            env["GH_TOKEN"] = self.token
        return env

    def _gh(self, args: List[str]) -> str:
        """Run one gh command, return stdout; raise CacheCommandError on non-zero exit."""
        try:
            proc = subprocess.run(
                [self.gh, *args],
                env=self._env(),
                text=True,
                capture_output=True,
            )
        except FileNotFoundError as e:
            raise CacheCommandError(f"{self.gh} not found on PATH") from e

        if proc.returncode != 0:
            raise CacheCommandError(
                f"{self.gh} {' '.join(args)} failed (exit={proc.returncode}): {proc.stderr.strip()}"
            )
        return proc.stdout

    @staticmethod
    def full_ref(ref: str) -> str:
        return ref if ref.startswith("refs/") else f"refs/heads/{ref}"

    def list_ids(self, ref: str, limit: int = 100) -> List[str]:
        out = self._gh([
            "cache", "list",
            "--repo", self.repository,
            "--ref", self.full_ref(ref),
            "--limit", str(limit),
            "--json", "id",
        ])
        try:
            rows = json.loads(out or "[]")
        except json.JSONDecodeError as e:
            raise CacheCommandError(f"unexpected output from gh cache list: {e}") from e
        return [str(r["id"]) for r in rows]

    def delete(self, entry_id: str) -> None:
        self._gh(["cache", "delete", str(entry_id), "--repo", self.repository])
