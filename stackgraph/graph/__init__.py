from stackgraph.graph.compiler import compile_properties, compile_value, wire_reference
from stackgraph.graph.dependency import DependencyGraph, topological_sort
from stackgraph.graph.exports import ExportRegistry

__all__ = [
    "DependencyGraph",
    "ExportRegistry",
    "compile_properties",
    "compile_value",
    "topological_sort",
    "wire_reference",
]
