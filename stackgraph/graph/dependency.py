"""
Dependency graph over the resources of one stack.

Edges come from two places: dependencies declared on a node (or added with
add_dependency) and dependencies inferred from the DeferredValues embedded in
a node's properties. Both point from the dependent resource to the resource
that must be provisioned first.
"""
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from stackgraph.models.deferred import DeferredValue, find_references
from stackgraph.models.errors import (
    CycleDetectedError,
    DuplicateNameError,
    SelfDependencyError,
    UnknownNodeError,
)
from stackgraph.models.resource import ResourceNode

_WHITE, _GREY, _BLACK = 0, 1, 2


def topological_sort(names: Sequence[str], deps: Callable[[str], Iterable[str]]) -> List[str]:
    """
    Order names so each one follows everything it depends on.

    Depth-first traversal with three colours, driven by an explicit stack so
    long dependency chains do not hit the interpreter's recursion limit. A
    dependency found GREY is a back-edge and the names on the current path
    from it form the cycle. Roots and dependencies are visited in the order
    of ``names``, which keeps the result deterministic.
    """
    index = {name: i for i, name in enumerate(names)}
    colour = dict.fromkeys(names, _WHITE)
    order: List[str] = []

    def pending(name: str) -> Iterator[str]:
        return iter(sorted(deps(name), key=index.__getitem__))

    for root in names:
        if colour[root] != _WHITE:
            continue
        colour[root] = _GREY
        path = [root]
        stack = [pending(root)]
        while stack:
            for dep in stack[-1]:
                if colour[dep] == _GREY:
                    raise CycleDetectedError(path[path.index(dep):])
                if colour[dep] == _WHITE:
                    colour[dep] = _GREY
                    path.append(dep)
                    stack.append(pending(dep))
                    break
            else:
                stack.pop()
                done = path.pop()
                colour[done] = _BLACK
                order.append(done)
    return order


class DependencyGraph:
    def __init__(self) -> None:
        self._nodes: Dict[str, ResourceNode] = {}
        self._inferred: Dict[str, List[str]] = {}
        self._order: Optional[List[str]] = None
        self._revision = 0

    # ------------------------------------------------------------------ nodes
    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[ResourceNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def revision(self) -> int:
        """Incremented by every change that can affect the deployment order."""
        return self._revision

    def get(self, name: str) -> Optional[ResourceNode]:
        return self._nodes.get(name)

    def node(self, name: str) -> ResourceNode:
        try:
            return self._nodes[name]
        except KeyError:
            raise UnknownNodeError(name) from None

    def names(self) -> List[str]:
        return list(self._nodes)

    def add_node(self, node: ResourceNode) -> ResourceNode:
        if node.name in self._nodes:
            raise DuplicateNameError(node.name)
        if node.name in node.depends_on:
            raise SelfDependencyError(node.name)
        self._nodes[node.name] = node
        self._inferred[node.name] = []
        self._touch()
        return node

    # ------------------------------------------------------------------ edges
    def add_dependency(self, source: str, target: str) -> None:
        """Declare that ``source`` must be provisioned after ``target``."""
        for name in (source, target):
            if name not in self._nodes:
                raise UnknownNodeError(name)
        if source == target:
            raise SelfDependencyError(source)
        node = self._nodes[source]
        if target in node.depends_on:
            return
        node.depends_on.append(target)
        self._touch()

    def infer_edges(self) -> int:
        """
        Rebuild the inferred edge set from the DeferredValues in every
        property bag. Returns the number of inferred edges. On error the
        previously inferred edges are left in place.
        """
        inferred: Dict[str, List[str]] = {}
        for name, node in self._nodes.items():
            targets: Dict[str, None] = {}
            for ref in find_references(node.properties):
                if not isinstance(ref, DeferredValue):
                    continue
                if ref.target not in self._nodes:
                    raise UnknownNodeError(ref.target, referenced_by=name)
                if ref.target == name:
                    raise SelfDependencyError(name)
                targets[ref.target] = None
            inferred[name] = list(targets)

        if inferred != self._inferred:
            self._inferred = inferred
            self._touch()
        return sum(len(t) for t in inferred.values())

    def declared_dependencies(self, name: str) -> List[str]:
        return list(self.node(name).depends_on)

    def inferred_dependencies(self, name: str) -> List[str]:
        self.node(name)
        return list(self._inferred.get(name, []))

    def dependencies_of(self, name: str) -> List[str]:
        """Direct dependencies, declared first, then inferred."""
        merged = dict.fromkeys(self.declared_dependencies(name))
        merged.update(dict.fromkeys(self._inferred.get(name, [])))
        return list(merged)

    def dependents_of(self, name: str) -> List[str]:
        self.node(name)
        return [n for n in self._nodes if name in self.dependencies_of(n)]

    def edges(self) -> List[Tuple[str, str, str]]:
        """(source, target, origin) triples; origin is "declared" or "inferred"."""
        result = []
        for name, node in self._nodes.items():
            for dep in node.depends_on:
                result.append((name, dep, "declared"))
            for dep in self._inferred.get(name, []):
                if dep not in node.depends_on:
                    result.append((name, dep, "inferred"))
        return result

    # ------------------------------------------------------------------ order
    def topological_order(self) -> List[ResourceNode]:
        if self._order is None:
            self._validate_declared()
            self._order = topological_sort(list(self._nodes), self.dependencies_of)
        return [self._nodes[n] for n in self._order]

    def is_valid_order(self, names: Sequence[str]) -> bool:
        """True when ``names`` lists every node once, each after its dependencies."""
        if len(names) != len(self._nodes) or set(names) != set(self._nodes):
            return False
        position = {name: i for i, name in enumerate(names)}
        for name in names:
            for dep in self.dependencies_of(name):
                if dep not in position or position[dep] > position[name]:
                    return False
        return True

    def _validate_declared(self) -> None:
        # depends_on may name resources added later, so it is checked here
        for name, node in self._nodes.items():
            for dep in node.depends_on:
                if dep == name:
                    raise SelfDependencyError(name)
                if dep not in self._nodes:
                    raise UnknownNodeError(dep, referenced_by=name)

    def _touch(self) -> None:
        self._revision += 1
        self._order = None
