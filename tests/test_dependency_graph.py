"""
Sprintify
Tests — in-memory precedence graph.
"""

from sprintify.services.dependency_graph import DependencyGraph


def _chain(*nodes):
    graph = DependencyGraph(nodes)
    for a, b in zip(nodes, nodes[1:]):
        graph.add_edge(a, b)
    return graph


def test_reaches_follows_edges():
    graph = _chain(1, 2, 3)
    assert graph.reaches(1, 3)
    assert not graph.reaches(3, 1)
    assert graph.reaches(2, 2)


def test_would_create_cycle():
    graph = _chain(1, 2, 3)
    assert graph.would_create_cycle(3, 1)
    assert graph.would_create_cycle(2, 2)
    assert not graph.would_create_cycle(1, 3)


def test_topological_order_is_stable():
    graph = DependencyGraph([5, 4, 3, 2, 1])
    graph.add_edge(1, 2)
    graph.add_edge(4, 2)

    ordered, leftover = graph.topological_order()

    assert leftover == []
    assert ordered == [5, 4, 3, 1, 2]


def test_cycle_members_left_over():
    graph = _chain(1, 2, 3, 4)
    graph.add_edge(3, 2)

    ordered, leftover = graph.topological_order()

    assert ordered == [1]
    assert leftover == [2, 3, 4]
    assert graph.has_cycle()


def test_edge_payload_and_removal():
    graph = DependencyGraph()
    graph.add_edge("a", "b", "SS", -2)

    assert graph.predecessors("b") == {"a": ("SS", -2)}
    assert graph.successors("a") == {"b": ("SS", -2)}
    assert len(graph) == 2

    graph.remove_edge("a", "b")
    assert not graph.has_edge("a", "b")
    assert graph.predecessors("b") == {}
