from typing import Any, Dict, Iterator, List

from stackgraph.graph.compiler import wire_reference
from stackgraph.models.errors import DuplicateExportError, UnknownAttributeError, UnknownNodeError
from stackgraph.models.export import Export
from stackgraph.models.resource import supports_attribute


class ExportRegistry:
    """
    Values a stack publishes under stable names for other stacks to read.
    Only wire references are produced here; concrete values exist after a
    real deployment.
    """

    def __init__(self) -> None:
        self._exports: Dict[str, Export] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._exports

    def __iter__(self) -> Iterator[Export]:
        return iter(self._exports.values())

    def __len__(self) -> int:
        return len(self._exports)

    def names(self) -> List[str]:
        return list(self._exports)

    def get(self, name: str) -> Export:
        return self._exports[name]

    def add(self, export: Export) -> Export:
        if export.name in self._exports:
            raise DuplicateExportError(export.name)
        self._exports[export.name] = export
        return export

    def register(self, name: str, node_name: str, attribute: str = "Identifier", description: str = "") -> Export:
        return self.add(Export(name=name, node_name=node_name, attribute=attribute, description=description))

    def register_literal(self, name: str, value: Any, description: str = "") -> Export:
        return self.add(Export(name=name, value=value, description=description))

    def check(self, export: Export, graph) -> None:
        if export.is_literal:
            return
        node = graph.get(export.node_name)
        if node is None:
            raise UnknownNodeError(export.node_name, referenced_by=f"export {export.name}")
        if not supports_attribute(node.kind, export.attribute):
            raise UnknownAttributeError(node.name, export.attribute, node.kind.value)

    def validate(self, graph) -> None:
        for export in self._exports.values():
            self.check(export, graph)

    def resolve_all(self, graph) -> Dict[str, Any]:
        """Map each export name to the wire reference of the value it publishes."""
        self.validate(graph)
        resolved: Dict[str, Any] = {}
        for export in self._exports.values():
            if export.is_literal:
                resolved[export.name] = export.value
            else:
                resolved[export.name] = wire_reference(graph.get(export.node_name), export.attribute)
        return resolved
