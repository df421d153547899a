from dataclasses import dataclass
from typing import Any, Optional

from stackgraph.models.deferred import canonical_attribute


@dataclass(frozen=True)
class Export:
    """A stable name under which a stack publishes one value."""

    name: str
    node_name: Optional[str] = None
    attribute: Optional[str] = None
    value: Any = None
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("Export name must not be empty")
        if self.node_name is None and self.value is None:
            raise ValueError(f"Export '{self.name}' needs either a resource or a literal value")
        if self.node_name is not None and self.value is not None:
            raise ValueError(f"Export '{self.name}' cannot have both a resource and a literal value")
        if self.node_name is not None:
            object.__setattr__(self, "attribute", canonical_attribute(self.attribute or "Identifier"))

    @property
    def is_literal(self) -> bool:
        return self.node_name is None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "node": self.node_name,
            "attribute": self.attribute,
            "value": self.value,
            "description": self.description,
        }
