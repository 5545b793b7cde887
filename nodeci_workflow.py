# nodeci_workflow.py
# Push pipeline for the Node.js project in this directory:
# build + test, artifact hand-off, branch cache cleanup, failure report.
from __future__ import annotations

from nodeci import node_pipeline


def workflow():
    return node_pipeline(
        node_version="18",
        lockfile="package-lock.json",
        install_cmd="npm ci",
        test_cmd="npm test",
        build_cmd="npm run build",
        extra_test_install_cmd="npm install --no-save vitest",
    )
