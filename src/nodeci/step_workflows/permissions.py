# step_workflows/permissions.py
from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING, Dict

from ..ui.console import get_console

if TYPE_CHECKING:
    from ..runner import StepContext

# esbuild ships a native binary; both the cache and the artifact transfer
# can hand it back without its executable bit.
ESBUILD_BIN = "node_modules/@esbuild/linux-x64/bin/esbuild"

EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def fix_permissions(path: str | Path) -> bool:
    """
    Mark `path` executable if it exists. Never raises for a missing file.

    Returns True if the file was present (and is now executable).
    """
    p = Path(path)
    console = get_console()
    if not p.is_file():
        console.print_info(f"{p} not found, skipping permission fix")
        return False

    mode = p.stat().st_mode
    os.chmod(p, mode | EXEC_BITS)
    console.print_info(f"Fixed permissions for {p}")
    return True


def fix_binary_permissions(ctx: "StepContext") -> Dict[str, str]:
    """Action: chmod +x on `with_["path"]` (relative to the stage workspace)."""
    rel = ctx.params.get("path", ESBUILD_BIN)
    fixed = fix_permissions(ctx.workspace / rel)
    return {"fixed": "true" if fixed else "false"}
