"""
Placeholders for values the provisioning backend only knows at apply time.
"""
from dataclasses import dataclass
from typing import Any, Iterator

IDENTIFIER = "Identifier"

# Accepted spellings that resolve to a canonical selector
_ATTRIBUTE_ALIASES = {
    "GeneratedIdentifier": IDENTIFIER,
}


def canonical_attribute(attribute: str) -> str:
    return _ATTRIBUTE_ALIASES.get(attribute, attribute)


@dataclass(frozen=True)
class DeferredValue:
    """A value produced by another resource once it has been provisioned."""

    target: str
    attribute: str = IDENTIFIER

    def __post_init__(self):
        if not self.target:
            raise ValueError("DeferredValue requires a target resource name")
        if not self.attribute:
            raise ValueError("DeferredValue requires an attribute selector")
        object.__setattr__(self, "attribute", canonical_attribute(self.attribute))

    def __str__(self) -> str:
        return f"{self.target}.{self.attribute}"


@dataclass(frozen=True)
class ParameterValue:
    """The value a stack parameter takes at deploy time."""

    name: str

    def __str__(self) -> str:
        return f"param:{self.name}"


@dataclass(frozen=True)
class ImportedValue:
    """A value published by another stack under a stable export name."""

    export_name: str

    def __str__(self) -> str:
        return f"import:{self.export_name}"


DEFERRED_TYPES = (DeferredValue, ParameterValue, ImportedValue)


def find_references(val: Any) -> Iterator[Any]:
    """
    Recursively yield every deferred marker embedded in a property value.
    Mappings are walked in key order, sequences in position order.
    """
    if isinstance(val, DEFERRED_TYPES):
        yield val
    elif isinstance(val, dict):
        for v in val.values():
            yield from find_references(v)
    elif isinstance(val, (list, tuple)):
        for item in val:
            yield from find_references(item)
