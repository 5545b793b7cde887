# pipeline.py
from __future__ import annotations

from typing import List

from .dsl import always, failure, output_equals, sh, stage, uses, wf
from .model import Stage, Step
from .step_workflows.artifact import download_artifact, upload_artifact
from .step_workflows.cache import cache_dependencies
from .step_workflows.checkout import checkout
from .step_workflows.node import setup_node
from .step_workflows.permissions import ESBUILD_BIN, fix_binary_permissions
from .step_workflows.purge import purge_caches
from .step_workflows.report import report_failure

ARTIFACT_NAME = "node_modules"


def node_pipeline(
    *,
    node_version: str | None = None,
    lockfile: str = "package-lock.json",
    esbuild_bin: str = ESBUILD_BIN,
    install_cmd: str = "npm ci",
    test_cmd: str = "npm test",
    build_cmd: str = "npm run build",
    extra_test_install_cmd: str = "npm install --no-save vitest",
    verify_node: bool = True,
    purge_limit: int = 100,
) -> List[Stage]:
    """
    The push pipeline:

        build ──> test ──┐
          │              ├──> cleanup (always) ──> report (on failure)
          └──────────────┘

    build uploads node_modules only on a cache miss, and test always tries
    to download it.
    """

    def _setup() -> List[Step]:
        steps = [uses("Checkout", checkout, id="checkout")]
        if verify_node:
            with_ = {"node-version": node_version} if node_version else {}
            steps.append(uses("Setup Node.js", setup_node, id="node", with_=with_))
        return steps

    return wf(
        stage(
            "build",
            *_setup(),
            uses(
                "Cache node modules",
                cache_dependencies,
                id="cache",
                with_={"path": "node_modules", "lockfile": lockfile},
            ),
            uses(
                "Fix esbuild permissions",
                fix_binary_permissions,
                with_={"path": esbuild_bin},
                if_=output_equals("cache", "cache-hit", "true"),
            ),
            sh("Install dependencies", install_cmd),
            sh("Run tests", test_cmd),
            sh("Build", build_cmd),
            uses(
                "Upload node_modules",
                upload_artifact,
                with_={"name": ARTIFACT_NAME, "path": "node_modules"},
                if_=output_equals("cache", "cache-hit", "false"),
            ),
            outputs={"cache-hit": "cache.cache-hit"},
        ),
        stage(
            "test",
            *_setup(),
            uses("Download node_modules", download_artifact, with_={"name": ARTIFACT_NAME}),
            uses("Fix esbuild permissions", fix_binary_permissions, with_={"path": esbuild_bin}),
            sh("Install test framework", extra_test_install_cmd),
            sh("Run tests", test_cmd),
            needs=["build"],
        ),
        stage(
            "cleanup",
            uses("Delete branch caches", purge_caches, with_={"limit": purge_limit}),
            needs=["build", "test"],
            if_=always(),
        ),
        stage(
            "report",
            uses("Dump run context", report_failure),
            needs=["build", "test", "cleanup"],
            if_=failure(),
        ),
    )
