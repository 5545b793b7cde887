# step_workflows/cache.py
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List

from ..cache import lockfile_cache_key, restore_prefix
from ..ui.console import get_console

if TYPE_CHECKING:
    from ..runner import StepContext


def _paths(ctx: "StepContext") -> List[str]:
    path = ctx.params.get("path", "node_modules")
    return [path] if isinstance(path, str) else list(path)


def cache_dependencies(ctx: "StepContext") -> Dict[str, str]:
    """
    Action: restore node_modules for this lockfile, save it after the stage
    on a miss.

    with_:
      path          directory (or list) to cache, default node_modules
      lockfile      default package-lock.json
      key           overrides the lockfile-derived key
      restore-keys  prefixes to fall back on, default ["{os}-node-modules-"]
    """
    console = get_console()
    os_name = ctx.context.os_name
    key = ctx.params.get("key") or lockfile_cache_key(
        os_name, ctx.workspace / ctx.params.get("lockfile", "package-lock.json")
    )
    restore_keys = list(ctx.params.get("restore-keys", [restore_prefix(os_name)]))

    hit = ctx.cache.restore(
        ctx.context.ref_name,
        key,
        ctx.workspace,
        restore_keys=restore_keys,
        fallback_refs=[ctx.context.default_branch],
    )

    if hit.hit:
        console.print_cache_hit(ctx.stage, key)
    elif hit.restored:
        console.print_cache_partial(ctx.stage, hit.matched_key)
    else:
        console.print_cache_miss(ctx.stage, key)

    if not hit.hit:
        paths = _paths(ctx)

        def _save(post_ctx: "StepContext") -> None:
            entry = post_ctx.cache.save(post_ctx.context.ref_name, key, paths, post_ctx.workspace)
            if entry is not None:
                console.print_cache_saved(post_ctx.stage, key)

        ctx.add_post(_save)

    return hit.outputs
