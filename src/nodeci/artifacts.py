# artifacts.py
from __future__ import annotations

import shutil
import tarfile
import threading
from pathlib import Path
from typing import List, Sequence

from .errors import ArtifactConflict, ArtifactNotFound

DEFAULT_ARTIFACT_DIR = ".nodeci/artifacts"


class ArtifactStore:
    """
    Named blobs passed between stages of a single run:
      root/
        <run_id>/
          <name>.tar.gz

    Write-once per name. Independent of the cache; nothing here outlives
    the run once cleanup() is called.
    """

    def __init__(self, root: str | Path, run_id: str):
        self.root = Path(root).resolve()
        self.run_id = run_id
        self._lock = threading.Lock()

    @property
    def run_dir(self) -> Path:
        return self.root / self.run_id

    def _path(self, name: str) -> Path:
        return self.run_dir / f"{name}.tar.gz"

    def names(self) -> List[str]:
        if not self.run_dir.is_dir():
            return []
        return sorted(p.name[: -len(".tar.gz")] for p in self.run_dir.glob("*.tar.gz"))

    def upload(self, name: str, paths: Sequence[str], root: str | Path) -> Path:
        """Archive `paths` (relative to root) under `name`."""
        root_p = Path(root).resolve()
        with self._lock:
            art = self._path(name)
            if art.exists():
                raise ArtifactConflict(f"artifact {name!r} was already uploaded in run {self.run_id}")
            missing = [p for p in paths if not (root_p / p).exists()]
            if missing:
                raise FileNotFoundError(f"artifact {name!r}: no such path(s): {missing}")

            self.run_dir.mkdir(parents=True, exist_ok=True)
            tmp = art.with_suffix(".gz.tmp")
            try:
                with tarfile.open(str(tmp), mode="w:gz") as tar:
                    for rel in paths:
                        tar.add(str(root_p / rel), arcname=rel)
                tmp.replace(art)
            finally:
                tmp.unlink(missing_ok=True)
            return art

    def download(self, name: str, dest: str | Path) -> Path:
        """Extract artifact `name` into dest."""
        art = self._path(name)
        if not art.exists():
            raise ArtifactNotFound(
                f"Unable to find any artifacts for the associated run: {name!r} (run {self.run_id})"
            )
        dest_p = Path(dest)
        dest_p.mkdir(parents=True, exist_ok=True)
        with tarfile.open(str(art), mode="r:gz") as tar:
            tar.extractall(path=str(dest_p), filter="tar")
        return dest_p

    def cleanup(self) -> None:
        shutil.rmtree(self.run_dir, ignore_errors=True)
