# src/convtest/dsl.py
from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional, Sequence

from .model import Probe, Target


# ---------------------------------------------------------------------
# Probe helpers
# ---------------------------------------------------------------------

def probe(*args: str, entrypoint: str | None = None, description: str = "") -> Probe:
    """Command probe: applicable when `args` run through the image exit 0."""
    return Probe(args=tuple(args), entrypoint=entrypoint, description=description)


def min_version(version: str, *, entrypoint: str | None = None, args: Sequence[str] = ()) -> Probe:
    """Version probe: applicable when the tool reports at least `version`."""
    return Probe(
        args=tuple(args),
        min_version=version,
        entrypoint=entrypoint,
        description=f"minimum version {version}",
    )


# ---------------------------------------------------------------------
# Target helpers
# ---------------------------------------------------------------------

def target(
    name: str,
    *args: str,
    needs: Optional[Sequence[str]] = None,
    fixtures: Optional[Sequence[str]] = None,
    output: str | None = None,
    expected: str | None = None,
    entrypoint: str | None = None,
    probe: Probe | None = None,
    description: str = "",
) -> Target:
    """A target that runs the image with `args`."""
    if not args:
        raise ValueError(f"target({name!r}) must have at least one argument; use group() for aggregates")
    return Target(
        name=name,
        needs=tuple(needs or ()),
        args=tuple(args),
        entrypoint=entrypoint,
        fixtures=tuple(fixtures or ()),
        output=output,
        expected=expected,
        probe=probe,
        description=description,
    )


def copy(name: str, source: str, *, output: str | None = None, needs: Optional[Sequence[str]] = None) -> Target:
    """Copy a fixture into the output directory, e.g. copy("output/example.bib", "example.bib")."""
    return Target(
        name=name,
        needs=tuple(needs or ()),
        fixtures=(source,),
        output=output or name,
        copy_from=source,
    )


def group(name: str, *children: str, description: str = "") -> Target:
    """Aggregate target: runs nothing itself, only fans out to `children`."""
    if not children:
        raise ValueError(f"group({name!r}) must name at least one child")
    return Target(name=name, needs=tuple(children), description=description)


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("style", ["kate", "tango"]).targets(
            lambda s: target(f"output/code-highlight-{s}.pdf", ...)
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def targets(self, builder: Callable[[Any], Target]) -> List[Target]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


def suite(*items: Target | Iterable[Target]) -> List[Target]:
    """Flatten targets and matrix expansions into one list."""
    out: List[Target] = []
    for item in items:
        if isinstance(item, Target):
            out.append(item)
        else:
            out.extend(item)
    return out
