"""Inter-procedural control-flow graph with coverage events.

Locations are ``(method signature, statement index)`` pairs; index
``len(statements)`` is the method's exit. Call statements have an edge to
the callee's entry and a summary edge to the next statement; exits have
edges back to every return site. Listeners (statistics, stopping
strategies) are notified of every traversed edge.
"""

from __future__ import annotations

from collections import deque

from pywitness.core.state import Edge, Location
from pywitness.engine.program import Invoke, MethodBody, Program, Return


class TraversalListener:
    """Receives graph events; subclasses override what they need."""

    def on_traversed(self, edge: Edge, newly_covered: bool) -> None:
        pass

    def on_method_added(self, body: MethodBody) -> None:
        pass


class InterProceduralGraph:
    def __init__(self, program: Program):
        self.program = program
        self._successors: dict[Location, list[Location]] = {}
        self._predecessors: dict[Location, list[Location]] = {}
        self._methods: dict[str, MethodBody] = {}
        self._return_sites: dict[str, list[Location]] = {}
        self._covered: set[Location] = set()
        self._listeners: list[TraversalListener] = []
        self._traversals = 0

    def _add_edge(self, source: Location, target: Location) -> None:
        successors = self._successors.setdefault(source, [])
        if target not in successors:
            successors.append(target)
            self._predecessors.setdefault(target, []).append(source)
        self._predecessors.setdefault(source, [])
        self._successors.setdefault(target, [])

    def exit_location(self, body: MethodBody) -> Location:
        return (body.signature, len(body.statements))

    def join(self, body: MethodBody) -> None:
        """Add a method and everything it calls to the graph."""
        pending = [body]
        while pending:
            current = pending.pop()
            signature = current.signature
            if signature in self._methods:
                continue
            self._methods[signature] = current
            exit_location = self.exit_location(current)
            self._successors.setdefault(exit_location, [])
            self._predecessors.setdefault(exit_location, [])
            for pc, stmt in enumerate(current.statements):
                location = (signature, pc)
                if isinstance(stmt, Return):
                    self._add_edge(location, exit_location)
                for successor in current.successors(pc):
                    self._add_edge(location, (signature, successor))
                if isinstance(stmt, Invoke) and self.program.has_method(stmt.executable):
                    callee = self.program.method(stmt.executable)
                    self._add_edge(location, (callee.signature, 0))
                    self._link_return(callee, (signature, pc + 1))
                    pending.append(callee)
            for site in self._return_sites.get(signature, []):
                self._add_edge(exit_location, site)
            for listener in list(self._listeners):
                listener.on_method_added(current)

    def _link_return(self, callee: MethodBody, site: Location) -> None:
        sites = self._return_sites.setdefault(callee.signature, [])
        if site not in sites:
            sites.append(site)
        if callee.signature in self._methods:
            self._add_edge(self.exit_location(callee), site)

    def successors(self, location: Location) -> list[Location]:
        return self._successors.get(location, [])

    def predecessors(self, location: Location) -> list[Location]:
        return self._predecessors.get(location, [])

    def locations(self) -> list[Location]:
        return list(self._successors)

    def methods(self) -> list[MethodBody]:
        return list(self._methods.values())

    def is_covered(self, location: Location) -> bool:
        return location in self._covered

    def uncovered(self) -> set[Location]:
        return {loc for loc in self._successors if loc not in self._covered}

    @property
    def traversals(self) -> int:
        return self._traversals

    def mark_covered(self, location: Location) -> None:
        self._covered.add(location)

    def traverse(self, edge: Edge) -> bool:
        """Record that a state moved along ``edge`` and notify listeners.

        Returns True when either end of the edge was not covered before.
        """
        self._traversals += 1
        newly_covered = edge[0] not in self._covered or edge[1] not in self._covered
        self._covered.update(edge)
        for listener in list(self._listeners):
            listener.on_traversed(edge, newly_covered)
        return newly_covered

    def attach(self, listener: TraversalListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def detach(self, listener: TraversalListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def distances_to(self, targets: set[Location]) -> dict[Location, int]:
        """Shortest number of edges from every location to any target."""
        distances = {loc: 0 for loc in targets if loc in self._successors}
        queue = deque(distances)
        while queue:
            current = queue.popleft()
            for predecessor in self._predecessors.get(current, []):
                if predecessor not in distances:
                    distances[predecessor] = distances[current] + 1
                    queue.append(predecessor)
        return distances

    def __repr__(self) -> str:
        return (
            f"InterProceduralGraph(methods={len(self._methods)}, "
            f"locations={len(self._successors)}, covered={len(self._covered)})"
        )


__all__ = ["InterProceduralGraph", "TraversalListener"]
