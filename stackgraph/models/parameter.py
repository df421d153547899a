from dataclasses import dataclass
from typing import Any, Optional

from stackgraph.models.deferred import ParameterValue


@dataclass
class Parameter:
    """A stack input supplied when the stack is deployed."""

    name: str
    type: str = "String"
    default: Optional[Any] = None
    description: str = ""

    @property
    def value(self) -> ParameterValue:
        return ParameterValue(self.name)

    def to_dict(self) -> dict:
        out = {"Type": self.type}
        if self.default is not None:
            out["Default"] = self.default
        if self.description:
            out["Description"] = self.description
        return out
