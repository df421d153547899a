"""
CloudFormation template emitter.

Resources are written in plan order with explicit DependsOn lists. Each
export becomes an AWS::SSM::Parameter keyed by the export name, and an
Output carrying the same export name.
"""
import json
import re
from typing import Any, Dict, List

import yaml

from stackgraph.models.errors import DuplicateNameError
from stackgraph.plan import ExecutionPlan

TEMPLATE_VERSION = "2010-09-09"


def logical_id(name: str) -> str:
    """CloudFormation logical IDs are alphanumeric: 'lab-vpc' -> 'LabVpc'."""
    parts = [p for p in re.split(r"[^A-Za-z0-9]+", name) if p]
    return "".join(p[:1].upper() + p[1:] for p in parts)


def _logical_ids(plan: ExecutionPlan) -> Dict[str, str]:
    ids: Dict[str, str] = {}
    seen: Dict[str, str] = {}
    for name in list(plan.order) + list(plan.parameters):
        lid = logical_id(name)
        if not lid or (lid in seen and seen[lid] != name):
            raise DuplicateNameError(lid or name, what="logical ID")
        seen[lid] = name
        ids[name] = lid
    return ids


def _rename(val: Any, ids: Dict[str, str]) -> Any:
    if isinstance(val, dict):
        if len(val) == 1:
            (key, inner), = val.items()
            if key == "Ref" and isinstance(inner, str) and inner in ids:
                return {"Ref": ids[inner]}
            if key == "Fn::GetAtt" and isinstance(inner, list) and inner and inner[0] in ids:
                return {"Fn::GetAtt": [ids[inner[0]]] + list(inner[1:])}
        return {k: _rename(v, ids) for k, v in val.items()}
    if isinstance(val, list):
        return [_rename(v, ids) for v in val]
    return val


def _export_resources(plan: ExecutionPlan, ids: Dict[str, str], taken: List[str]):
    resources: Dict[str, Any] = {}
    outputs: Dict[str, Any] = {}
    for name, wire in plan.exports.items():
        base = logical_id(name) or "Export"
        lid = f"{base}Parameter"
        while lid in taken or lid in resources:
            lid = f"{lid}X"
        value = _rename(wire, ids)
        description = plan.export_descriptions.get(name, "")
        props = {"Name": name, "Type": "String", "Value": value}
        if description:
            props["Description"] = description
        resources[lid] = {"Type": "AWS::SSM::Parameter", "Properties": props}

        output: Dict[str, Any] = {"Value": value, "Export": {"Name": name}}
        if description:
            output["Description"] = description
        out_id = f"{base}Output"
        while out_id in outputs:
            out_id = f"{out_id}X"
        outputs[out_id] = output
    return resources, outputs


def build_template(plan: ExecutionPlan, description: str = "") -> Dict[str, Any]:
    ids = _logical_ids(plan)
    template: Dict[str, Any] = {"AWSTemplateFormatVersion": TEMPLATE_VERSION}
    template["Description"] = description or f"stackgraph plan for stack {plan.stack}"

    if plan.parameters:
        template["Parameters"] = {ids[name]: spec for name, spec in plan.parameters.items()}

    resources: Dict[str, Any] = {}
    for step in plan.steps:
        body: Dict[str, Any] = {"Type": step.backend_type}
        if step.depends_on:
            body["DependsOn"] = [ids[d] for d in step.depends_on]
        body["Properties"] = _rename(step.properties, ids)
        if step.description:
            body["Metadata"] = {"Description": step.description}
        resources[ids[step.name]] = body

    export_resources, outputs = _export_resources(plan, ids, list(resources))
    resources.update(export_resources)
    template["Resources"] = resources
    if outputs:
        template["Outputs"] = outputs
    return template


def build_report(plan: ExecutionPlan, fmt: str = "json") -> str:
    template = build_template(plan)
    if fmt == "yaml":
        return yaml.safe_dump(template, sort_keys=False, default_flow_style=False)
    return json.dumps(template, indent=2)
