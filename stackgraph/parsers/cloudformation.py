import json
import os
import re
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

from stackgraph.detect import detect_format
from stackgraph.models.deferred import DeferredValue, ParameterValue
from stackgraph.models.errors import StackFileError
from stackgraph.models.resource import (
    GENERATED_PASSWORD,
    KINDS_BY_BACKEND_TYPE,
    ResourceKind,
    selector_for_backend_attribute,
)
from stackgraph.stack import Stack

console = Console(stderr=True)


# ------------------------------------------------------------------ CFN YAML loader
# yaml.safe_load can't handle CloudFormation-specific tags (!Ref, !Sub, !GetAtt, ...).
# Short-form tags are turned into their long-form intrinsic mappings so the rest
# of the parser only deals with {"Ref": ...} and {"Fn::X": ...}.

class _CfnLoader(yaml.SafeLoader):
    pass


def _cfn_tag_constructor(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Any:
    key = "Ref" if tag_suffix == "Ref" else f"Fn::{tag_suffix}"
    if isinstance(node, yaml.ScalarNode):
        return {key: loader.construct_scalar(node)}
    if isinstance(node, yaml.SequenceNode):
        return {key: loader.construct_sequence(node, deep=True)}
    if isinstance(node, yaml.MappingNode):
        return {key: loader.construct_mapping(node, deep=True)}
    return {key: None}


_CfnLoader.add_multi_constructor("!", _cfn_tag_constructor)

# {{resolve:secretsmanager:<secret-name>:SecretString:<key>...}}
_SECRET_RESOLVE_RE = re.compile(r"^\{\{resolve:secretsmanager:([^:}]+):SecretString:([^:}]+)")


class _Converter:
    """Turns intrinsic references into deferred markers for one template."""

    def __init__(self, kinds: Dict[str, ResourceKind], parameters: List[str], secrets: Dict[str, str]):
        self.kinds = kinds
        self.parameters = parameters
        self.secrets = secrets      # SecretName -> logical name
        self.unresolved: List[str] = []

    def convert(self, val: Any) -> Any:
        if isinstance(val, dict):
            if len(val) == 1:
                (key, inner), = val.items()
                if key == "Ref" and isinstance(inner, str):
                    return self._ref(val, inner)
                if key == "Fn::GetAtt":
                    return self._getatt(val, inner)
            return {k: self.convert(v) for k, v in val.items()}
        if isinstance(val, list):
            return [self.convert(v) for v in val]
        if isinstance(val, str):
            return self._dynamic_reference(val)
        return val

    def _ref(self, original: Dict, name: str) -> Any:
        if name in self.kinds:
            return DeferredValue(name)
        if name in self.parameters:
            return ParameterValue(name)
        if not name.startswith("AWS::"):
            self.unresolved.append(name)
        return original

    def _getatt(self, original: Dict, raw: Any) -> Any:
        if isinstance(raw, str) and "." in raw:
            raw = raw.split(".", 1)
        if not (isinstance(raw, list) and len(raw) == 2 and isinstance(raw[0], str)):
            return original
        target, backend_attr = raw
        kind = self.kinds.get(target)
        if kind is None:
            self.unresolved.append(target)
            return original
        selector = selector_for_backend_attribute(kind, str(backend_attr))
        if selector is None:
            self.unresolved.append(f"{target}.{backend_attr}")
            return original
        return DeferredValue(target, selector)

    def _dynamic_reference(self, val: str) -> Any:
        # A secret resolved by its physical name becomes an explicit reference
        # to the secret resource, so the dependency is part of the graph.
        m = _SECRET_RESOLVE_RE.match(val)
        if m and m.group(1) in self.secrets:
            return DeferredValue(self.secrets[m.group(1)], GENERATED_PASSWORD)
        return val


def load_template(filepath: str) -> Dict[str, Any]:
    _, ext = os.path.splitext(filepath.lower())
    try:
        with open(filepath, encoding="utf-8") as fh:
            if ext == ".json":
                template = json.load(fh)
            else:
                template = yaml.load(fh, Loader=_CfnLoader)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise StackFileError(filepath, f"cannot read template: {exc}") from exc
    if not isinstance(template, dict) or not isinstance(template.get("Resources"), dict):
        raise StackFileError(filepath, "not a CloudFormation template (no Resources mapping)")
    return template


def _depends_on(definition: Dict[str, Any]) -> List[str]:
    raw = definition.get("DependsOn") or []
    if isinstance(raw, str):
        return [raw]
    return [d for d in raw if isinstance(d, str)]


def _export_name(output: Dict[str, Any]) -> Optional[str]:
    export = output.get("Export")
    if isinstance(export, dict) and isinstance(export.get("Name"), str):
        return export["Name"]
    return None


def build_stack(template: Dict[str, Any], name: str, filepath: str = "<memory>") -> Stack:
    stack = Stack(name, description=template.get("Description", "") or "")

    for pname, pdef in (template.get("Parameters") or {}).items():
        pdef = pdef if isinstance(pdef, dict) else {}
        stack.add_parameter(
            pname,
            type=pdef.get("Type", "String"),
            default=pdef.get("Default"),
            description=pdef.get("Description", ""),
        )

    kinds: Dict[str, ResourceKind] = {}
    secrets: Dict[str, str] = {}
    for logical_name, definition in template["Resources"].items():
        if not isinstance(definition, dict):
            continue
        kind = KINDS_BY_BACKEND_TYPE.get(definition.get("Type", ""))
        if kind is None:
            console.print(
                f"[yellow]Warning:[/yellow] {filepath}: skipping '{logical_name}' "
                f"(unsupported type {definition.get('Type')!r})"
            )
            continue
        kinds[logical_name] = kind
        secret_name = (definition.get("Properties") or {}).get("Name")
        if kind == ResourceKind.SECRET and isinstance(secret_name, str):
            secrets[secret_name] = logical_name

    converter = _Converter(kinds, list(stack.parameters), secrets)
    for logical_name, kind in kinds.items():
        definition = template["Resources"][logical_name]
        properties = converter.convert(definition.get("Properties") or {})
        depends_on = []
        for dep in _depends_on(definition):
            if dep in kinds:
                depends_on.append(dep)
            else:
                console.print(
                    f"[yellow]Warning:[/yellow] {filepath}: dropping DependsOn "
                    f"'{logical_name}' -> '{dep}' (resource not imported)"
                )
        stack.add_resource(logical_name, kind, properties=properties, depends_on=depends_on)

    for out_name, output in (template.get("Outputs") or {}).items():
        if not isinstance(output, dict):
            continue
        export_name = _export_name(output)
        if export_name is None:
            continue
        value = converter.convert(output.get("Value"))
        description = output.get("Description", "") or ""
        if isinstance(value, DeferredValue):
            stack.export(export_name, value.target, value.attribute, description)
        elif isinstance(value, (str, int, float, bool)):
            stack.export_value(export_name, value, description)
        else:
            console.print(
                f"[yellow]Warning:[/yellow] {filepath}: output '{out_name}' is not a "
                f"single resource attribute, export '{export_name}' skipped"
            )

    for ref in sorted(set(converter.unresolved)):
        console.print(f"[yellow]Warning:[/yellow] {filepath}: reference to '{ref}' left as a literal")

    return stack


def parse_file(filepath: str) -> Stack:
    name = os.path.splitext(os.path.basename(filepath))[0]
    return build_stack(load_template(filepath), name, filepath)


def parse_directory(path: str) -> List[Stack]:
    stacks: List[Stack] = []

    if os.path.isfile(path):
        if detect_format(path) == "cloudformation":
            stacks.append(parse_file(path))
        return stacks

    for root, _, files in os.walk(path):
        for fname in sorted(files):
            fpath = os.path.join(root, fname)
            if detect_format(fpath) == "cloudformation":
                stacks.append(parse_file(fpath))

    return stacks
