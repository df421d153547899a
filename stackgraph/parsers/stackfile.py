import json
import os
from typing import Any, Dict, List

import yaml

from stackgraph.models.deferred import DeferredValue, ImportedValue, ParameterValue
from stackgraph.models.errors import StackFileError
from stackgraph.models.resource import ResourceKind
from stackgraph.stack import Stack


# ------------------------------------------------------------------ stack-file YAML loader
# Stack files mark deferred values with tags:
#   !Ref vpc                 -> DeferredValue("vpc", "Identifier")
#   !GetAtt ad.DnsAddresses  -> DeferredValue("ad", "DnsAddresses")
#   !Param windows-image     -> ParameterValue("windows-image")
#   !Import vpc-id           -> ImportedValue("vpc-id")
# JSON files spell them as one-key mappings: {"Ref": ...}, {"GetAtt": "a.b"}, ...

class _StackLoader(yaml.SafeLoader):
    pass


def _split_getatt(raw: Any) -> DeferredValue:
    if isinstance(raw, list) and len(raw) == 2:
        return DeferredValue(str(raw[0]), str(raw[1]))
    if isinstance(raw, str) and "." in raw:
        target, attribute = raw.split(".", 1)
        return DeferredValue(target, attribute)
    raise ValueError(f"GetAtt expects 'resource.Attribute', got {raw!r}")


def _ref_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> DeferredValue:
    return DeferredValue(loader.construct_scalar(node))


def _getatt_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> DeferredValue:
    if isinstance(node, yaml.SequenceNode):
        return _split_getatt(loader.construct_sequence(node))
    return _split_getatt(loader.construct_scalar(node))


def _param_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> ParameterValue:
    return ParameterValue(loader.construct_scalar(node))


def _import_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> ImportedValue:
    return ImportedValue(loader.construct_scalar(node))


_StackLoader.add_constructor("!Ref", _ref_constructor)
_StackLoader.add_constructor("!GetAtt", _getatt_constructor)
_StackLoader.add_constructor("!Param", _param_constructor)
_StackLoader.add_constructor("!Import", _import_constructor)


_JSON_MARKERS = {
    "Ref": lambda v: DeferredValue(v),
    "GetAtt": _split_getatt,
    "Param": lambda v: ParameterValue(v),
    "Import": lambda v: ImportedValue(v),
}


def _convert_json_markers(val: Any) -> Any:
    if isinstance(val, dict):
        if len(val) == 1:
            (key, inner), = val.items()
            if key in _JSON_MARKERS:
                return _JSON_MARKERS[key](inner)
        return {k: _convert_json_markers(v) for k, v in val.items()}
    if isinstance(val, list):
        return [_convert_json_markers(v) for v in val]
    return val


def load_document(filepath: str) -> Dict[str, Any]:
    """Read a stack file into plain Python objects with deferred markers in place."""
    _, ext = os.path.splitext(filepath.lower())
    try:
        with open(filepath, encoding="utf-8") as fh:
            if ext == ".json":
                doc = _convert_json_markers(json.load(fh))
            else:
                doc = yaml.load(fh, Loader=_StackLoader)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise StackFileError(filepath, f"cannot read stack file: {exc}") from exc

    if not isinstance(doc, dict):
        raise StackFileError(filepath, "top level must be a mapping")
    return doc


def _kind(filepath: str, name: str, raw: Any) -> ResourceKind:
    try:
        return ResourceKind(raw)
    except ValueError:
        allowed = ", ".join(k.value for k in ResourceKind)
        raise StackFileError(filepath, f"resource '{name}' has unknown kind {raw!r} (expected one of {allowed})") from None


def build_stack(doc: Dict[str, Any], filepath: str = "<memory>") -> Stack:
    name = doc.get("stack") or os.path.splitext(os.path.basename(filepath))[0]
    stack = Stack(str(name), description=doc.get("description", "") or "")

    parameters = doc.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise StackFileError(filepath, "'parameters' must be a mapping of name to definition")

    for pname, pdef in parameters.items():
        pdef = pdef or {}
        if not isinstance(pdef, dict):
            raise StackFileError(filepath, f"parameter '{pname}' must be a mapping")
        stack.add_parameter(
            pname,
            type=pdef.get("type", "String"),
            default=pdef.get("default"),
            description=pdef.get("description", ""),
        )

    resources = doc.get("resources") or {}
    if not isinstance(resources, dict):
        raise StackFileError(filepath, "'resources' must be a mapping of name to definition")

    for rname, rdef in resources.items():
        if not isinstance(rdef, dict):
            raise StackFileError(filepath, f"resource '{rname}' must be a mapping")
        depends_on = rdef.get("depends_on") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        if not isinstance(depends_on, list):
            raise StackFileError(filepath, f"depends_on of '{rname}' must be a name or a list of names")
        properties = rdef.get("properties") or {}
        if not isinstance(properties, dict):
            raise StackFileError(filepath, f"properties of '{rname}' must be a mapping")
        stack.add_resource(
            str(rname),
            _kind(filepath, rname, rdef.get("kind")),
            properties=properties,
            depends_on=[str(d) for d in depends_on],
            description=rdef.get("description", "") or "",
        )

    exports = doc.get("exports") or {}
    if not isinstance(exports, dict):
        raise StackFileError(filepath, "'exports' must be a mapping of name to definition")

    for ename, edef in exports.items():
        if not isinstance(edef, dict):
            raise StackFileError(filepath, f"export '{ename}' must be a mapping")
        description = edef.get("description", "") or ""
        if "value" in edef:
            stack.export_value(str(ename), edef["value"], description)
        elif "node" in edef:
            stack.export(str(ename), str(edef["node"]), edef.get("attribute", "Identifier"), description)
        else:
            raise StackFileError(filepath, f"export '{ename}' needs 'node' or 'value'")

    return stack


def parse_file(filepath: str) -> Stack:
    return build_stack(load_document(filepath), filepath)


def parse_files(filepaths: List[str]) -> List[Stack]:
    return [parse_file(fp) for fp in filepaths]
