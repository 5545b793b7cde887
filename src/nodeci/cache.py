# cache.py
from __future__ import annotations

import hashlib
import json
import tarfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Dependency caching, keyed the way hosted runners key node_modules:
#   key          = "{os}-node-modules-{sha256(lockfile)}"
#   restore-keys = ["{os}-node-modules-"]
#
# Entries are scoped to the branch ref that created them:
#   root/
#     <url-quoted ref>/
#       <entry-id>.tar.gz
#       <entry-id>.json        (manifest: id, key, ref, paths, created_at)
#
# A run may read entries of its own ref and of the default branch, but the
# cleanup stage only ever deletes entries of its own ref.
# ---------------------------------------------------------------------


DEFAULT_CACHE_DIR = ".nodeci/cache"


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def hash_files(paths: Iterable[Path]) -> str:
    """
    Stable hash over one or more files (hashFiles() semantics): each file is
    hashed on its own, then the per-file digests are hashed in path order.
    Missing files are ignored; no files at all gives an empty string.
    """
    digests = [_sha256_file(p) for p in sorted(Path(p) for p in paths) if Path(p).is_file()]
    if not digests:
        return ""
    h = hashlib.sha256()
    for d in digests:
        h.update(bytes.fromhex(d))
    return h.hexdigest()


def restore_prefix(os_name: str) -> str:
    return f"{os_name}-node-modules-"


def lockfile_cache_key(os_name: str, lockfile: str | Path) -> str:
    return f"{restore_prefix(os_name)}{hash_files([Path(lockfile)])}"


def _ref_dirname(ref: str) -> str:
    # one directory level per ref, and distinct refs never share one
    return quote(ref, safe="")


@dataclass(frozen=True)
class CacheEntry:
    id: str
    key: str
    ref: str
    paths: List[str]
    created_at: float
    size: int = 0

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "key": self.key,
            "ref": self.ref,
            "paths": list(self.paths),
            "created_at": self.created_at,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> CacheEntry:
        return cls(
            id=data["id"],
            key=data["key"],
            ref=data["ref"],
            paths=list(data.get("paths", [])),
            created_at=float(data.get("created_at", 0)),
            size=int(data.get("size", 0)),
        )


@dataclass(frozen=True)
class CacheHit:
    hit: bool                       # exact primary-key match
    key: str                        # the primary key looked up
    matched_key: str | None = None  # key actually restored (exact or restore-key)
    entry: Optional[CacheEntry] = field(default=None, compare=False)

    @property
    def restored(self) -> bool:
        return self.matched_key is not None

    @property
    def outputs(self) -> Dict[str, str]:
        return {
            "cache-hit": "true" if self.hit else "false",
            "cache-primary-key": self.key,
            "cache-matched-key": self.matched_key or "",
        }


class CacheStore:
    """File-based, ref-scoped cache store."""

    def __init__(self, root: str | Path = DEFAULT_CACHE_DIR):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _ref_dir(self, ref: str) -> Path:
        return self.root / _ref_dirname(ref)

    def entries(self, ref: str) -> List[CacheEntry]:
        """Entries for one ref, newest first."""
        d = self._ref_dir(ref)
        if not d.is_dir():
            return []
        out: List[CacheEntry] = []
        for man in d.glob("*.json"):
            try:
                entry = CacheEntry.from_dict(json.loads(man.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError):
                # half-written or foreign file; not a cache entry
                continue
            if entry.ref == ref:
                out.append(entry)
        out.sort(key=lambda e: e.created_at, reverse=True)
        return out

    def lookup(
        self,
        ref: str,
        key: str,
        restore_keys: Sequence[str] = (),
        fallback_refs: Sequence[str] = (),
    ) -> tuple[Optional[CacheEntry], bool]:
        """
        Find the entry to restore. Returns (entry, exact).

        Search order per ref (current first, then fallbacks): exact key, then
        each restore-key prefix, newest entry wins.
        """
        scopes = [ref] + [r for r in fallback_refs if r != ref]
        for scope in scopes:
            entries = self.entries(scope)
            for e in entries:
                if e.key == key:
                    return e, True
            for prefix in restore_keys:
                for e in entries:
                    if e.key.startswith(prefix):
                        return e, False
        return None, False

    def restore(
        self,
        ref: str,
        key: str,
        dest: str | Path,
        *,
        restore_keys: Sequence[str] = (),
        fallback_refs: Sequence[str] = (),
    ) -> CacheHit:
        """Extract the best matching entry into dest."""
        entry, exact = self.lookup(ref, key, restore_keys, fallback_refs)
        if entry is None:
            return CacheHit(hit=False, key=key)

        art = self._ref_dir(entry.ref) / f"{entry.id}.tar.gz"
        with tarfile.open(str(art), mode="r:gz") as tar:
            tar.extractall(path=str(Path(dest)), filter="tar")
        return CacheHit(hit=exact, key=key, matched_key=entry.key, entry=entry)

    def save(self, ref: str, key: str, paths: Sequence[str], root: str | Path) -> Optional[CacheEntry]:
        """
        Archive `paths` (relative to root) as a new entry.
        Returns None when an entry with this key already exists for ref.
        """
        root_p = Path(root).resolve()
        with self._lock:
            if any(e.key == key for e in self.entries(ref)):
                return None

            d = self._ref_dir(ref)
            d.mkdir(parents=True, exist_ok=True)
            entry_id = uuid.uuid4().hex[:16]
            art = d / f"{entry_id}.tar.gz"
            tmp = art.with_suffix(".gz.tmp")
            try:
                with tarfile.open(str(tmp), mode="w:gz") as tar:
                    for rel in paths:
                        src = root_p / rel
                        if src.exists():
                            tar.add(str(src), arcname=rel)
                tmp.replace(art)
            finally:
                tmp.unlink(missing_ok=True)

            entry = CacheEntry(
                id=entry_id,
                key=key,
                ref=ref,
                paths=list(paths),
                created_at=time.time(),
                size=art.stat().st_size,
            )
            (d / f"{entry_id}.json").write_text(
                json.dumps(entry.to_dict(), sort_keys=True, indent=2), encoding="utf-8"
            )
            return entry

    # ---- purge backend ----

    def list_ids(self, ref: str, limit: int = 100) -> List[str]:
        return [e.id for e in self.entries(ref)[:limit]]

    def delete(self, entry_id: str) -> None:
        """Delete an entry by id, whatever ref it lives under."""
        with self._lock:
            for man in self.root.glob(f"*/{entry_id}.json"):
                man.with_name(f"{entry_id}.tar.gz").unlink(missing_ok=True)
                man.unlink(missing_ok=True)
                return
        raise KeyError(f"cache entry not found: {entry_id}")
