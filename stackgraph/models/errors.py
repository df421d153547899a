from typing import Iterable, List


class StackGraphError(Exception):
    """Base class for every error raised while building or compiling a stack."""


class DuplicateNameError(StackGraphError):
    def __init__(self, name: str, what: str = "resource"):
        self.name = name
        super().__init__(f"Duplicate {what} name '{name}'")


class UnknownNodeError(StackGraphError):
    def __init__(self, name: str, referenced_by: str = ""):
        self.name = name
        self.referenced_by = referenced_by
        msg = f"Unknown resource '{name}'"
        if referenced_by:
            msg += f" (referenced by '{referenced_by}')"
        super().__init__(msg)


class SelfDependencyError(StackGraphError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Resource '{name}' cannot depend on itself")


class CycleDetectedError(StackGraphError):
    def __init__(self, cycle: Iterable[str]):
        self.cycle: List[str] = list(cycle)
        path = " -> ".join(self.cycle + self.cycle[:1])
        super().__init__(f"Dependency cycle detected: {path}")


class UnresolvableReferenceError(StackGraphError):
    pass


class UnknownAttributeError(UnresolvableReferenceError):
    def __init__(self, name: str, attribute: str, kind: str = ""):
        self.name = name
        self.attribute = attribute
        where = f" of kind {kind}" if kind else ""
        super().__init__(f"Resource '{name}'{where} has no attribute '{attribute}'")


class DuplicateExportError(StackGraphError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Export '{name}' is already registered")


class UnknownExportError(UnresolvableReferenceError):
    def __init__(self, name: str, stack: str = ""):
        self.name = name
        self.stack = stack
        msg = f"No stack exports '{name}'"
        if stack:
            msg += f" (imported by stack '{stack}')"
        super().__init__(msg)


class StackFileError(StackGraphError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
