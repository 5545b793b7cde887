from __future__ import annotations

import os


def _env(*names: str, default: str = "") -> str:
    for n in names:
        v = os.getenv(n)
        if v:
            return v
    return default


REPOSITORY = _env("NODECI_REPOSITORY", "GITHUB_REPOSITORY")
REF_NAME = _env("NODECI_REF_NAME", "GITHUB_REF_NAME")
TOKEN = _env("GH_TOKEN", "GITHUB_TOKEN")
NODE_VERSION = _env("NODECI_NODE_VERSION", default="18")
CACHE_DIR = _env("NODECI_CACHE_DIR", default=".nodeci/cache")
ARTIFACT_DIR = _env("NODECI_ARTIFACT_DIR", default=".nodeci/artifacts")
WORK_DIR = _env("NODECI_WORK_DIR", default=".nodeci/work")
DEFAULT_BRANCH = _env("NODECI_DEFAULT_BRANCH", default="main")
CACHE_LIST_LIMIT = int(_env("NODECI_CACHE_LIST_LIMIT", default="100"))
