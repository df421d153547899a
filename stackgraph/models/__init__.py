from stackgraph.models.deferred import DeferredValue, ImportedValue, ParameterValue
from stackgraph.models.errors import (
    CycleDetectedError,
    DuplicateExportError,
    DuplicateNameError,
    SelfDependencyError,
    StackFileError,
    StackGraphError,
    UnknownAttributeError,
    UnknownExportError,
    UnknownNodeError,
    UnresolvableReferenceError,
)
from stackgraph.models.export import Export
from stackgraph.models.resource import ResourceKind, ResourceNode

__all__ = [
    "CycleDetectedError",
    "DeferredValue",
    "DuplicateExportError",
    "DuplicateNameError",
    "Export",
    "ImportedValue",
    "ParameterValue",
    "ResourceKind",
    "ResourceNode",
    "SelfDependencyError",
    "StackFileError",
    "StackGraphError",
    "UnknownAttributeError",
    "UnknownExportError",
    "UnknownNodeError",
    "UnresolvableReferenceError",
]
