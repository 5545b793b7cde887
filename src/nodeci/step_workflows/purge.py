# step_workflows/purge.py
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Protocol

from ..ui.console import get_console

if TYPE_CHECKING:
    from ..runner import StepContext


class CacheBackend(Protocol):
    def list_ids(self, ref: str, limit: int = 100) -> List[str]: ...

    def delete(self, entry_id: str) -> None: ...


def purge_branch_caches(backend: CacheBackend, ref: str, limit: int = 100) -> List[str]:
    """
    Delete every cache entry scoped to `ref` (up to `limit` per listing).

    Best-effort: a listing failure deletes nothing, a failed delete is
    reported and the loop moves on. Nothing is raised.
    Returns the ids that were actually deleted.
    """
    console = get_console()
    try:
        ids = backend.list_ids(ref, limit=limit)
    except Exception as e:
        console.print_warning(f"could not list caches for {ref}: {e}")
        return []

    if not ids:
        console.print_info(f"No caches found for {ref}")
        return []

    console.print_info(f"Deleting {len(ids)} cache(s) for {ref}...")
    deleted: List[str] = []
    for entry_id in ids:
        try:
            backend.delete(entry_id)
        except Exception as e:
            console.print_warning(f"could not delete cache {entry_id}: {e}")
            continue
        deleted.append(entry_id)

    console.print_info(f"Deleted cache ids: {', '.join(deleted) if deleted else '(none)'}")
    return deleted


def purge_backends(cache: CacheBackend, backend: CacheBackend | None) -> List[CacheBackend]:
    """The store restore/save go through, then the remote backend if there is one."""
    backends = [cache]
    if backend is not None and backend is not cache:
        backends.append(backend)
    return backends


def purge_caches(ctx: "StepContext") -> Dict[str, str]:
    """
    Action: purge the caches of the branch this run was triggered for.

    The store the build restored from and saved to is always purged, also
    when a remote backend (gh) is configured next to it.
    """
    ref = ctx.params.get("ref") or ctx.context.ref_name
    limit = int(ctx.params.get("limit", 100))
    deleted: List[str] = []
    for backend in purge_backends(ctx.cache, ctx.cache_backend):
        deleted.extend(purge_branch_caches(backend, ref, limit=limit))
    return {"deleted": ",".join(deleted), "deleted-count": str(len(deleted))}
