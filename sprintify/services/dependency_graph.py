"""
In-memory precedence graph over phases or WBS tasks.

Built fresh from edge rows on every use; the database edge tables are the
only persistent state.  Cycle detection walks predecessor chains with an
iterative DFS, ordering uses Kahn's algorithm with ties broken by the
caller-supplied node order so results are deterministic.
"""

from collections import defaultdict, deque


class DependencyGraph:
    """Directed graph of ``predecessor → successor`` edges with metadata.

    Edge payload is ``(dependency_type, lag_days)``.
    """

    def __init__(self, nodes=()):
        self._nodes = []
        self._known = set()
        self._succ = defaultdict(dict)
        self._pred = defaultdict(dict)
        for node in nodes:
            self.add_node(node)

    @classmethod
    def from_edges(cls, nodes, edges):
        """Build from node ids and edge rows exposing predecessor_id / successor_id /
        dependency_type / lag_days."""
        graph = cls(nodes)
        for e in edges:
            graph.add_edge(e.predecessor_id, e.successor_id, e.dependency_type, e.lag_days)
        return graph

    # ── Construction

    def add_node(self, node):
        if node not in self._known:
            self._known.add(node)
            self._nodes.append(node)

    def add_edge(self, predecessor, successor, dependency_type="FS", lag_days=0):
        self.add_node(predecessor)
        self.add_node(successor)
        self._succ[predecessor][successor] = (dependency_type, lag_days)
        self._pred[successor][predecessor] = (dependency_type, lag_days)

    def remove_edge(self, predecessor, successor):
        self._succ[predecessor].pop(successor, None)
        self._pred[successor].pop(predecessor, None)

    # ── Queries

    @property
    def nodes(self):
        return list(self._nodes)

    def has_edge(self, predecessor, successor):
        return successor in self._succ.get(predecessor, {})

    def predecessors(self, node):
        """``{pred_id: (dependency_type, lag_days)}`` for a node."""
        return dict(self._pred.get(node, {}))

    def successors(self, node):
        return dict(self._succ.get(node, {}))

    def reaches(self, source, target):
        """True if a directed path source → … → target exists (a node reaches itself)."""
        if source == target:
            return True
        visited = set()
        stack = [source]
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self._succ.get(current, {}))
        return False

    def would_create_cycle(self, predecessor, successor):
        """Adding predecessor → successor closes a cycle iff successor already reaches predecessor."""
        return self.reaches(successor, predecessor)

    def topological_order(self):
        """Kahn's algorithm.

        Returns:
            (ordered, leftover) where ``leftover`` lists the nodes that sit on
            or behind a cycle and could not be ordered.
        """
        rank = {n: i for i, n in enumerate(self._nodes)}
        in_degree = {n: len(self._pred.get(n, {})) for n in self._nodes}
        queue = deque(n for n in self._nodes if in_degree[n] == 0)
        ordered = []
        while queue:
            node = queue.popleft()
            ordered.append(node)
            for succ in sorted(self._succ.get(node, {}), key=rank.__getitem__):
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    queue.append(succ)
        done = set(ordered)
        leftover = [n for n in self._nodes if n not in done]
        return ordered, leftover

    def has_cycle(self):
        return bool(self.topological_order()[1])

    def __len__(self):
        return len(self._nodes)

    def __repr__(self):
        edges = sum(len(v) for v in self._succ.values())
        return f"<DependencyGraph nodes={len(self._nodes)} edges={edges}>"
