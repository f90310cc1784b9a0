import threading

import pytest

from helixheatx.config.params import HeatExchangerParams
from helixheatx.errors import BuildCancelled, TaskGraphError
from helixheatx.geometry.assembly import build_pipeline
from helixheatx.geometry.taskgraph import TaskGraph
from helixheatx.runtime import CancelToken


def arithmetic_graph():
    g = TaskGraph()
    g.add("a", lambda: 2)
    g.add("b", lambda: 3)
    g.add("sum", lambda a, b: a + b, ["a", "b"])
    g.add("square", lambda s: s * s, ["sum"])
    g.add("mixed", lambda sq, a: sq - a, ["square", "a"])
    return g


def test_order_respects_dependencies_and_declaration():
    g = TaskGraph()
    g.add("late", lambda x: x, ["early"])
    g.add("early", lambda: 1)
    g.add("other", lambda: 2)
    assert g.order() == ["early", "other", "late"]


def test_sequential_run():
    results = arithmetic_graph().run()
    assert results == {"a": 2, "b": 3, "sum": 5, "square": 25, "mixed": 23}


def test_parallel_matches_sequential():
    assert arithmetic_graph().run(workers=3) == arithmetic_graph().run(workers=1)


def test_on_stage_sees_every_node():
    seen = []
    arithmetic_graph().run(on_stage=lambda name, value: seen.append((name, value)))
    assert seen == [("a", 2), ("b", 3), ("sum", 5), ("square", 25), ("mixed", 23)]


def test_parallel_runs_independent_nodes_concurrently():
    barrier = threading.Barrier(2, timeout=5)

    def meet():
        barrier.wait()
        return True

    g = TaskGraph()
    g.add("left", meet)
    g.add("right", meet)
    g.add("both", lambda a, b: a and b, ["left", "right"])
    assert g.run(workers=2)["both"]


def test_duplicate_node_rejected():
    g = TaskGraph()
    g.add("a", lambda: 1)
    with pytest.raises(TaskGraphError):
        g.add("a", lambda: 2)


def test_missing_dependency_rejected():
    g = TaskGraph()
    g.add("a", lambda x: x, ["ghost"])
    with pytest.raises(TaskGraphError):
        g.run()


def test_cycle_rejected():
    g = TaskGraph()
    g.add("a", lambda b: b, ["b"])
    g.add("b", lambda a: a, ["a"])
    g.add("c", lambda: 0)
    with pytest.raises(TaskGraphError):
        g.order()


def test_cancelled_token_stops_run():
    token = CancelToken()
    token.cancel("stop")
    with pytest.raises(BuildCancelled):
        arithmetic_graph().run(cancel=token)


def test_cancel_between_stages():
    token = CancelToken()
    ran = []
    g = TaskGraph()
    g.add("first", lambda: token.cancel("enough"))
    g.add("second", lambda _: ran.append("second"), ["first"])
    with pytest.raises(BuildCancelled, match="enough"):
        g.run(cancel=token)
    assert ran == []


def test_failure_in_parallel_run_cancels_token():
    token = CancelToken()

    def boom():
        raise RuntimeError("stage failed")

    g = TaskGraph()
    g.add("ok", lambda: 1)
    g.add("bad", boom)
    g.add("after", lambda a, b: a, ["ok", "bad"])
    with pytest.raises(RuntimeError, match="stage failed"):
        g.run(workers=2, cancel=token)
    assert token.cancelled


# ---------------------------------------------------------------------------
# Build pipeline structure
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def pipeline(layout, grid):
    return build_pipeline(HeatExchangerParams(), layout, grid)


def test_pipeline_is_acyclic(pipeline):
    order = pipeline.order()
    assert len(order) == len(pipeline)
    assert sorted(order) == sorted(pipeline.names)
    assert order[-1] in ("final", "flange_thread_cutters", "io_screw_cutters")


@pytest.mark.parametrize("before, after", [
    ("screw_holes", "shell_drilled"),
    ("hot_void", "cool_void"),
    ("shell_drilled", "shell_slab"),
    ("shell_slab", "shell"),
    ("print_web", "shell"),
    ("shell", "carved"),
    ("fins", "carved"),
    ("splitters", "carved"),
    ("bounding_box", "carved"),
    ("carved", "final"),
    ("io_threads", "final"),
    ("io_cuts", "final"),
])
def test_pipeline_ordering(pipeline, before, after):
    assert before in pipeline.ancestors(after)
    order = pipeline.order()
    assert order.index(before) < order.index(after)


def test_fins_union_all_four_families(pipeline):
    assert set(pipeline.deps("fins")) == {
        "hot_turning_fins", "hot_straight_fins", "cool_turning_fins", "cool_straight_fins"}


def test_io_cuts_come_after_every_additive_step(pipeline):
    additive = pipeline.ancestors("carved") | {"carved", "io_threads"}
    assert additive <= pipeline.ancestors("final")
    assert "io_cuts" not in pipeline.ancestors("carved")


def test_diagnostics_nodes_optional(layout, grid):
    params = HeatExchangerParams()
    params.pipeline.diagnostics = False
    g = build_pipeline(params, layout, grid)
    assert "flange_thread_cutters" not in g
    assert "io_screw_cutters" not in g
    assert "final" in g
