import pytest

from convtest.dag import TargetGraph, topo_levels
from convtest.dsl import group, target
from convtest.errors import ConfigurationError, CyclicDependency, UnknownTarget
from convtest.model import Target


def names(targets):
    return [t.name for t in targets]


def test_resolve_puts_prerequisites_first():
    graph = TargetGraph([
        target("a", "--a", needs=["b", "c"]),
        target("b", "--b", needs=["c"]),
        target("c", "--c"),
    ])

    assert names(graph.resolve("a")) == ["c", "b", "a"]


def test_aggregate_expands_children_deduplicated_in_first_seen_order():
    graph = TargetGraph([
        target("x", "--x", needs=["shared"]),
        target("y", "--y", needs=["shared"]),
        target("shared", "--s"),
        group("both", "x", "y"),
    ])

    assert names(graph.resolve("both")) == ["shared", "x", "y"]


def test_aggregates_are_never_returned_for_execution():
    graph = TargetGraph([
        target("a", "--a"),
        group("inner", "a"),
        group("outer", "inner"),
    ])

    assert names(graph.resolve("outer")) == ["a"]


def test_aggregate_named_as_prerequisite_expands_to_its_leaves():
    graph = TargetGraph([
        target("a", "--a"),
        target("b", "--b"),
        group("setup", "a", "b"),
        target("main", "--m", needs=["setup"]),
    ])

    assert graph.prerequisites(graph.get("main")) == ["a", "b"]
    assert names(graph.resolve("main")) == ["a", "b", "main"]


def test_implicit_all_resolves_every_leaf():
    graph = TargetGraph([
        target("b", "--b", needs=["a"]),
        target("a", "--a"),
        group("g", "b"),
    ])

    assert names(graph.resolve("all")) == ["a", "b"]


def test_resolve_many_unions_selections():
    graph = TargetGraph([
        target("a", "--a"),
        target("b", "--b", needs=["a"]),
        target("c", "--c"),
    ])

    assert names(graph.resolve_many(["b", "c", "a"])) == ["a", "b", "c"]


def test_cycle_raises_with_path():
    graph = TargetGraph([
        target("a", "--a", needs=["b"]),
        target("b", "--b", needs=["c"]),
        target("c", "--c", needs=["a"]),
    ])

    with pytest.raises(CyclicDependency) as exc:
        graph.resolve("a")

    assert exc.value.cycle == ["a", "b", "c", "a"]


def test_self_dependency_is_a_cycle():
    graph = TargetGraph([target("a", "--a", needs=["a"])])

    with pytest.raises(CyclicDependency):
        graph.resolve("a")


def test_cycle_through_aggregate_is_detected():
    graph = TargetGraph([
        target("a", "--a", needs=["g"]),
        group("g", "a"),
    ])

    with pytest.raises(CyclicDependency):
        graph.resolve("g")


def test_unknown_target_name():
    graph = TargetGraph([target("a", "--a")])

    with pytest.raises(UnknownTarget) as exc:
        graph.resolve("nope")

    assert exc.value.name == "nope"
    assert exc.value.known == ["a"]


def test_unknown_prerequisite_is_rejected_at_construction():
    with pytest.raises(UnknownTarget) as exc:
        TargetGraph([target("a", "--a", needs=["ghost"])])

    assert exc.value.needed_by == "a"


def test_duplicate_names_are_rejected():
    with pytest.raises(ConfigurationError):
        TargetGraph([target("a", "--a"), target("a", "--b")])


def test_two_targets_may_not_share_an_output_file():
    with pytest.raises(ConfigurationError, match="output/x.pdf"):
        TargetGraph([
            target("one", "--a", output="output/x.pdf"),
            target("two", "--b", output="output/x.pdf"),
        ])


def test_target_without_args_is_an_aggregate():
    assert Target(name="g", needs=("a",)).is_aggregate
    assert not target("t", "--x").is_aggregate


def test_topo_levels_groups_independent_targets():
    graph = TargetGraph([
        target("tex", "--tex"),
        target("bib", "--bib"),
        target("pdf", "--pdf", needs=["tex", "bib"]),
        target("other", "--o"),
    ])
    selected = graph.resolve("all")

    assert topo_levels(graph, selected) == [["tex", "bib", "other"], ["pdf"]]
