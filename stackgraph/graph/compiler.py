"""
Document compiler: replaces deferred markers in property trees with the
intrinsic references the provisioning backend substitutes at apply time.

    DeferredValue(vpc, Identifier)      -> {"Ref": "vpc"}
    DeferredValue(ad, DnsAddresses)     -> {"Fn::GetAtt": ["ad", "DnsIpAddresses"]}
    DeferredValue(secret, GeneratedPassword)
        -> {"Fn::Join": ["", ["{{resolve:secretsmanager:", {"Ref": "secret"},
                              ":SecretString:password::}}"]]}
    ParameterValue(image)               -> {"Ref": "image"}
    ImportedValue(vpc-id)               -> "{{resolve:ssm:vpc-id}}"
"""
from typing import Any, Collection, Dict, Optional

from stackgraph.models.deferred import DeferredValue, ImportedValue, ParameterValue
from stackgraph.models.errors import UnknownAttributeError, UnresolvableReferenceError
from stackgraph.models.resource import (
    ATTRIBUTES,
    GENERATED_PASSWORD,
    ResourceKind,
    ResourceNode,
)

_DEFAULT_SECRET_KEY = "password"


def _get(props: Dict, *keys, default=None) -> Any:
    """Drill into nested dicts safely."""
    cur = props
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k, default)
        if cur is None:
            return default
    return cur


def _secret_reference(node: ResourceNode) -> Dict[str, Any]:
    key = _get(node.properties, "GenerateSecretString", "GenerateStringKey", default=_DEFAULT_SECRET_KEY)
    return {
        "Fn::Join": [
            "",
            [
                "{{resolve:secretsmanager:",
                {"Ref": node.name},
                f":SecretString:{key}::}}}}",
            ],
        ]
    }


def wire_reference(node: ResourceNode, attribute: str) -> Any:
    """Backend representation of ``node``'s ``attribute``."""
    catalogue = ATTRIBUTES[node.kind]
    if attribute not in catalogue:
        raise UnknownAttributeError(node.name, attribute, node.kind.value)
    if node.kind == ResourceKind.SECRET and attribute == GENERATED_PASSWORD:
        return _secret_reference(node)
    backend_attr = catalogue[attribute]
    if backend_attr is None:
        return {"Ref": node.name}
    return {"Fn::GetAtt": [node.name, backend_attr]}


def import_reference(export_name: str) -> str:
    return f"{{{{resolve:ssm:{export_name}}}}}"


def compile_value(val: Any, graph, parameters: Optional[Collection[str]] = None) -> Any:
    """
    Compile one property value. ``graph`` only needs a ``get(name)`` method.
    When ``parameters`` is given, ParameterValues must name one of them.
    """
    if isinstance(val, DeferredValue):
        node = graph.get(val.target)
        if node is None:
            raise UnresolvableReferenceError(
                f"Reference '{val}' points at resource '{val.target}', which is not in the stack"
            )
        return wire_reference(node, val.attribute)
    if isinstance(val, ParameterValue):
        if parameters is not None and val.name not in parameters:
            raise UnresolvableReferenceError(f"Parameter '{val.name}' is not declared")
        return {"Ref": val.name}
    if isinstance(val, ImportedValue):
        return import_reference(val.export_name)
    if isinstance(val, dict):
        return {k: compile_value(v, graph, parameters) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [compile_value(v, graph, parameters) for v in val]
    return val


def compile_properties(
    properties: Dict[str, Any], graph, parameters: Optional[Collection[str]] = None
) -> Dict[str, Any]:
    """Return a new property bag with every deferred marker compiled."""
    return {k: compile_value(v, graph, parameters) for k, v in properties.items()}
