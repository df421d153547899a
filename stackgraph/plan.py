"""
Execution plans and their hand-off to a provisioning backend.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from stackgraph.graph.compiler import compile_properties
from stackgraph.models.errors import StackGraphError
from stackgraph.models.resource import ResourceKind


@dataclass
class PlanStep:
    name: str
    kind: ResourceKind
    backend_type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)   # in plan order
    references: List[str] = field(default_factory=list)   # subset inferred from properties
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "type": self.backend_type,
            "depends_on": self.depends_on,
            "properties": self.properties,
        }


@dataclass
class ExecutionPlan:
    stack: str
    steps: List[PlanStep] = field(default_factory=list)
    parameters: Dict[str, dict] = field(default_factory=dict)
    exports: Dict[str, Any] = field(default_factory=dict)
    export_descriptions: Dict[str, str] = field(default_factory=dict)
    parameter_overrides: Dict[str, Any] = field(default_factory=dict)
    revision: int = 0

    @property
    def order(self) -> List[str]:
        return [s.name for s in self.steps]

    def step(self, name: str) -> Optional[PlanStep]:
        return next((s for s in self.steps if s.name == name), None)


@dataclass
class StepResult:
    name: str
    success: bool
    message: str = ""
    outputs: Dict[str, Any] = field(default_factory=dict)


class ProvisioningBackend(Protocol):
    """Performs an idempotent create-or-update keyed by the step's name."""

    def apply(self, step: PlanStep) -> StepResult:
        ...


class RecordingBackend:
    """Dry-run backend: records every submitted step and reports success."""

    def __init__(self, fail_on: Optional[List[str]] = None):
        self.applied: List[PlanStep] = []
        self.fail_on = set(fail_on or [])

    def apply(self, step: PlanStep) -> StepResult:
        self.applied.append(step)
        if step.name in self.fail_on:
            return StepResult(step.name, False, f"{step.backend_type} '{step.name}' failed")
        return StepResult(step.name, True, f"{step.backend_type} '{step.name}' applied")


def _properties_changed(plan: ExecutionPlan, stack) -> bool:
    """True when a property bag no longer compiles to what the plan carries."""
    for step in plan.steps:
        node = stack.graph.get(step.name)
        if node is None:
            return True
        if compile_properties(node.properties, stack.graph, stack.parameters) != step.properties:
            return True
    return False


def emit(plan: ExecutionPlan, stack, backend: ProvisioningBackend) -> List[StepResult]:
    """
    Submit ``plan`` step by step. A plan computed before the stack last
    changed, or whose compiled properties no longer match the stack's, is
    synthesized again with the same parameter overrides, and the order is
    checked against the current graph before anything is submitted.
    Submission stops at the first failed step.
    """
    # property bags may have been edited in place since the plan was built
    stack.graph.infer_edges()
    if plan.revision != stack.graph.revision or _properties_changed(plan, stack):
        plan = stack.synthesize(plan.parameter_overrides)
    if not stack.graph.is_valid_order(plan.order):
        raise StackGraphError(f"Plan for stack '{plan.stack}' is not a valid deployment order")

    results: List[StepResult] = []
    for step in plan.steps:
        result = backend.apply(step)
        results.append(result)
        if not result.success:
            break
    return results
