# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Set

from .errors import ConfigurationError, CyclicDependency, UnknownTarget
from .model import Target

ALL = "all"


class TargetGraph:
    """
    In-memory dependency graph of targets.

    Requires:
      - target.name: str (unique)
      - target.needs: names of targets that must finish BEFORE this one
    Aggregates (targets without a command) are expanded away: only leaf
    targets are ever returned for execution.
    """

    def __init__(self, targets: Iterable[Target]):
        targets = list(targets)
        names = [t.name for t in targets]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ConfigurationError(f"Duplicate target names found: {dupes}")

        self._by_name: Dict[str, Target] = {t.name: t for t in targets}
        self._order: List[str] = names

        for t in targets:
            for need in t.needs:
                if need not in self._by_name:
                    raise UnknownTarget(need, known=names, needed_by=t.name)

        # Each output file belongs to exactly one target.
        owners: Dict[str, str] = {}
        for t in targets:
            if t.output is None:
                continue
            if t.output in owners:
                raise ConfigurationError(
                    f"Targets '{owners[t.output]}' and '{t.name}' both write {t.output}"
                )
            owners[t.output] = t.name

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    @property
    def names(self) -> List[str]:
        return list(self._order)

    def get(self, name: str) -> Target:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownTarget(name, known=self._order) from None

    def resolve(self, name: str) -> List[Target]:
        """
        Leaf targets needed to build `name`, prerequisites first.

        De-duplicated, preserving first-seen order. Raises UnknownTarget or
        CyclicDependency.
        """
        if name == ALL and ALL not in self._by_name:
            return self.resolve_many(self._order)

        order: List[Target] = []
        done: Set[str] = set()
        self._visit(name, [], done, order)
        return order

    def resolve_many(self, names: Iterable[str]) -> List[Target]:
        order: List[Target] = []
        seen: Set[str] = set()
        for name in names:
            for t in self.resolve(name):
                if t.name not in seen:
                    seen.add(t.name)
                    order.append(t)
        return order

    def _visit(self, name: str, stack: List[str], done: Set[str], order: List[Target]) -> None:
        if name in done:
            return
        if name in stack:
            raise CyclicDependency(stack[stack.index(name):] + [name])

        target = self.get(name)
        stack.append(name)
        for need in target.needs:
            self._visit(need, stack, done, order)
        stack.pop()

        done.add(name)
        if not target.is_aggregate:
            order.append(target)

    def prerequisites(self, target: Target) -> List[str]:
        """Leaf-level prerequisites of `target` (aggregate needs expanded)."""
        out: List[str] = []
        for need in target.needs:
            for t in self.resolve(need):
                if t.name not in out:
                    out.append(t.name)
        return out


def topo_levels(graph: TargetGraph, targets: List[Target]) -> List[List[str]]:
    """
    Group resolved targets into "levels" (stages).
    Every target in a stage can run in parallel with the others.
    """
    selected = {t.name for t in targets}
    adj: Dict[str, Set[str]] = {t.name: set() for t in targets}
    indeg: Dict[str, int] = {t.name: 0 for t in targets}

    for t in targets:
        for dep in graph.prerequisites(t):
            if dep in selected and t.name not in adj[dep]:
                adj[dep].add(t.name)
                indeg[t.name] += 1

    position = {t.name: i for i, t in enumerate(targets)}
    q = deque(n for n in indeg if indeg[n] == 0)

    levels: List[List[str]] = []
    while q:
        level = sorted(q, key=position.__getitem__)
        q.clear()
        levels.append(level)
        for node in level:
            for child in adj[node]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

    return levels
