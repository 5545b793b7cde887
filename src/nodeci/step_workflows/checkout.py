# step_workflows/checkout.py
from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List

if TYPE_CHECKING:
    from ..runner import StepContext

# never copied into a stage workspace
SKIP_NAMES = {".git", "node_modules", ".nodeci"}


def _ignore_for(work_root: Path):
    work_root = work_root.resolve()

    def _ignore(directory: str, names: List[str]) -> List[str]:
        skipped = []
        for n in names:
            if n in SKIP_NAMES or (Path(directory) / n).resolve() == work_root:
                skipped.append(n)
        return skipped

    return _ignore


def checkout(ctx: "StepContext") -> Dict[str, str]:
    """
    Action: populate the stage workspace with the repository source.

    Installed dependencies are never copied: a stage only gets
    node_modules through the cache or an artifact.
    """
    shutil.copytree(
        ctx.repo_root,
        ctx.workspace,
        ignore=_ignore_for(ctx.work_root),
        dirs_exist_ok=True,
    )
    return {"sha": ctx.context.sha or "", "ref": ctx.context.ref_name}
