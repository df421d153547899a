"""
Markdown + Mermaid deployment plan report.
"""
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List

from jinja2 import Environment

from stackgraph import __version__
from stackgraph.models.resource import ResourceKind
from stackgraph.plan import ExecutionPlan, PlanStep

_KIND_SUBGRAPH = {
    ResourceKind.NETWORK:             "Networking",
    ResourceKind.SUBNET:              "Networking",
    ResourceKind.SECURITY_GROUP:      "Networking",
    ResourceKind.INTERNET_GATEWAY:    "Networking",
    ResourceKind.GATEWAY_ATTACHMENT:  "Networking",
    ResourceKind.ELASTIC_IP:          "Networking",
    ResourceKind.NAT_GATEWAY:         "Networking",
    ResourceKind.ROUTE_TABLE:         "Networking",
    ResourceKind.ROUTE_ASSOCIATION:   "Networking",
    ResourceKind.ROUTE:               "Networking",
    ResourceKind.DIRECTORY_SERVICE:   "Directory",
    ResourceKind.SECRET:              "Security",
    ResourceKind.ROLE:                "Identity",
    ResourceKind.INSTANCE_PROFILE:    "Identity",
    ResourceKind.AUTOMATION_DOCUMENT: "Automation",
    ResourceKind.COMPUTE_INSTANCE:    "Compute",
}

_SUBGRAPH_ORDER = ["Networking", "Security", "Identity", "Directory", "Automation", "Compute"]


def _sanitize_node_id(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_]", "_", name)


def _node_shape(step: PlanStep) -> str:
    """Return a Mermaid node definition string (without ID)."""
    label = step.name
    sg = _KIND_SUBGRAPH.get(step.kind, "Other")
    if sg == "Directory":
        return f"[({label})]"
    if sg == "Networking":
        return f"{{{label}}}"
    if sg == "Identity":
        return f"[/{label}/]"
    if sg == "Security":
        return f"[[{label}]]"
    return f"[{label}]"


def _build_mermaid(plan: ExecutionPlan) -> str:
    subgraphs: Dict[str, List[PlanStep]] = defaultdict(list)
    for step in plan.steps:
        subgraphs[_KIND_SUBGRAPH.get(step.kind, "Other")].append(step)

    lines = ["flowchart LR"]
    for sg_name in _SUBGRAPH_ORDER + ["Other"]:
        sg_steps = subgraphs.get(sg_name, [])
        if not sg_steps:
            continue
        lines.append(f"    subgraph {sg_name}")
        for step in sg_steps:
            lines.append(f"        {_sanitize_node_id(step.name)}{_node_shape(step)}")
        lines.append("    end")

    # Arrows point in deployment direction: dependency first
    for step in plan.steps:
        dst = _sanitize_node_id(step.name)
        for dep in step.depends_on:
            label = "ref" if dep in step.references else "after"
            lines.append(f"    {_sanitize_node_id(dep)} -->|{label}| {dst}")

    return "\n".join(lines)


_TEMPLATE = """\
# Deployment Plan: {{ plan.stack }}

**Generated:** {{ generated }}
**Source:** {{ source }}
**Tool:** stackgraph v{{ version }}

---

## Deployment Order

| # | Resource | Kind | Type | Depends On |
|---|----------|------|------|------------|
{% for s in plan.steps %}| {{ loop.index }} | `{{ s.name }}` | {{ s.kind.value }} | `{{ s.backend_type }}` | {{ s.depends_on | join(", ") if s.depends_on else "-" }} |
{% endfor %}
{% if plan.parameters %}
---

## Parameters

| Name | Type | Default |
|------|------|---------|
{% for name, p in plan.parameters.items() %}| `{{ name }}` | `{{ p.Type }}` | {{ p.Default if p.Default is not none else "-" }} |
{% endfor %}{% endif %}
{% if plan.exports %}
---

## Exports

| Name | Value | Description |
|------|-------|-------------|
{% for name, value in plan.exports.items() %}| `{{ name }}` | `{{ value | tojson }}` | {{ descriptions.get(name, "") }} |
{% endfor %}{% endif %}
---

## Dependency Diagram

```mermaid
{{ mermaid }}
```
"""


def build_report(plan: ExecutionPlan, source_path: str) -> str:
    env = Environment(autoescape=False)
    template = env.from_string(_TEMPLATE)

    return template.render(
        generated=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        source=source_path,
        version=__version__,
        plan=plan,
        descriptions=plan.export_descriptions,
        mermaid=_build_mermaid(plan),
    )
