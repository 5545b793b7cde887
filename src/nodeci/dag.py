# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Set, Tuple

from .conditions import OutputEquals
from .model import Stage


def build_dag(stages: List[Stage]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from Stage objects.

    Requires:
      - stage.name: str (unique)
      - stage.needs: names of stages that must reach a terminal state BEFORE this one
    """
    names = [s.name for s in stages]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate stage names found: {dupes}")

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in name_set}
    indeg: Dict[str, int] = {n: 0 for n in name_set}

    for st in stages:
        for dep in st.needs:
            if dep not in name_set:
                raise ValueError(
                    f"Stage '{st.name}' needs missing stage '{dep}'. "
                    f"Known stages: {sorted(name_set)}"
                )
            # Edge dep -> stage (dep must finish before stage)
            if st.name not in adj[dep]:
                adj[dep].add(st.name)
                indeg[st.name] += 1

        if isinstance(st.if_, OutputEquals) and st.if_.source not in st.needs:
            raise ValueError(
                f"Stage '{st.name}' condition {st.if_} reads outputs of '{st.if_.source}', "
                f"which is not in its needs"
            )

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological levels.
    Stages in the same level do not depend on each other.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level: List[str] = []
        for _ in range(len(q)):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise ValueError(f"DAG has a cycle. Stuck stages: {remaining}")

    return levels


def validate(stages: List[Stage]) -> List[List[str]]:
    """Build + order in one go; raises ValueError on a bad graph."""
    adj, indeg = build_dag(stages)
    return topo_levels(adj, indeg)
