"""
Stacks (deployment units) and apps (sets of stacks sharing exports).
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional

from stackgraph.graph.compiler import compile_properties
from stackgraph.graph.dependency import DependencyGraph, topological_sort
from stackgraph.graph.exports import ExportRegistry
from stackgraph.models.deferred import ImportedValue, find_references
from stackgraph.models.errors import DuplicateExportError, DuplicateNameError, UnknownExportError
from stackgraph.models.export import Export
from stackgraph.models.parameter import Parameter
from stackgraph.models.resource import ResourceKind, ResourceNode
from stackgraph.plan import ExecutionPlan, PlanStep


class Stack:
    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.graph = DependencyGraph()
        self.exports = ExportRegistry()
        self.parameters: Dict[str, Parameter] = {}

    def __repr__(self) -> str:
        return f"Stack({self.name!r}, resources={len(self.graph)}, exports={len(self.exports)})"

    # ------------------------------------------------------------------ definition
    def add_resource(
        self,
        name: str,
        kind: ResourceKind,
        properties: Optional[Dict[str, Any]] = None,
        depends_on: Iterable[str] = (),
        description: str = "",
    ) -> ResourceNode:
        node = ResourceNode(
            name=name,
            kind=kind,
            properties=dict(properties or {}),
            depends_on=list(depends_on),
            description=description,
        )
        return self.graph.add_node(node)

    def add_dependency(self, source: str, target: str) -> None:
        self.graph.add_dependency(source, target)

    def add_parameter(
        self, name: str, type: str = "String", default: Any = None, description: str = ""
    ) -> Parameter:
        if name in self.parameters:
            raise DuplicateNameError(name, what="parameter")
        param = Parameter(name=name, type=type, default=default, description=description)
        self.parameters[name] = param
        return param

    def export(self, name: str, node_name: str, attribute: str = "Identifier", description: str = "") -> Export:
        """Publish a resource attribute; the reference is checked now, not at deploy time."""
        export = Export(name=name, node_name=node_name, attribute=attribute, description=description)
        if name in self.exports:
            raise DuplicateExportError(name)
        self.exports.check(export, self.graph)
        return self.exports.add(export)

    def export_value(self, name: str, value: Any, description: str = "") -> Export:
        return self.exports.register_literal(name, value, description)

    def imports(self) -> List[str]:
        """Export names this stack reads from other stacks, in first-use order."""
        seen: Dict[str, None] = {}
        for node in self.graph:
            for ref in find_references(node.properties):
                if isinstance(ref, ImportedValue):
                    seen[ref.export_name] = None
        return list(seen)

    # ------------------------------------------------------------------ synthesis
    def synthesize(self, parameter_overrides: Optional[Mapping[str, Any]] = None) -> ExecutionPlan:
        """
        Infer edges, order the graph, compile every property bag and resolve
        exports. Any error propagates before a plan is returned.
        """
        self.graph.infer_edges()
        ordered = self.graph.topological_order()
        position = {node.name: i for i, node in enumerate(ordered)}

        steps = []
        for node in ordered:
            deps = sorted(self.graph.dependencies_of(node.name), key=position.__getitem__)
            inferred = self.graph.inferred_dependencies(node.name)
            steps.append(PlanStep(
                name=node.name,
                kind=node.kind,
                backend_type=node.backend_type,
                properties=compile_properties(node.properties, self.graph, self.parameters),
                depends_on=deps,
                references=[d for d in deps if d in inferred],
                description=node.description,
            ))

        overrides = dict(parameter_overrides or {})
        parameters = {}
        for name, param in self.parameters.items():
            spec = param.to_dict()
            if name in overrides:
                spec["Default"] = overrides[name]
            parameters[name] = spec

        return ExecutionPlan(
            stack=self.name,
            steps=steps,
            parameters=parameters,
            exports=self.exports.resolve_all(self.graph),
            export_descriptions={e.name: e.description for e in self.exports},
            parameter_overrides=overrides,
            revision=self.graph.revision,
        )


class App:
    """A set of stacks; a stack importing an export is planned after its producer."""

    def __init__(self) -> None:
        self._stacks: Dict[str, Stack] = {}

    def __iter__(self):
        return iter(self._stacks.values())

    def __len__(self) -> int:
        return len(self._stacks)

    def add_stack(self, stack: Stack) -> Stack:
        if stack.name in self._stacks:
            raise DuplicateNameError(stack.name, what="stack")
        self._stacks[stack.name] = stack
        return stack

    def stack(self, name: str) -> Stack:
        return self._stacks[name]

    def _producers(self) -> Dict[str, str]:
        producers: Dict[str, str] = {}
        for stack in self._stacks.values():
            for export_name in stack.exports.names():
                if export_name in producers:
                    raise DuplicateExportError(export_name)
                producers[export_name] = stack.name
        return producers

    def stack_order(self) -> List[Stack]:
        producers = self._producers()
        deps: Dict[str, List[str]] = {}
        for stack in self._stacks.values():
            upstream: Dict[str, None] = {}
            for export_name in stack.imports():
                producer = producers.get(export_name)
                if producer is None:
                    raise UnknownExportError(export_name, stack=stack.name)
                if producer != stack.name:
                    upstream[producer] = None
            deps[stack.name] = list(upstream)
        order = topological_sort(list(self._stacks), lambda name: deps[name])
        return [self._stacks[name] for name in order]

    def synthesize(self, parameter_overrides: Optional[Mapping[str, Any]] = None) -> List[ExecutionPlan]:
        return [stack.synthesize(parameter_overrides) for stack in self.stack_order()]
