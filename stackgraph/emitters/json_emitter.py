"""
JSON execution plan document.
"""
import json
from datetime import datetime, timezone
from typing import List

from stackgraph import __version__
from stackgraph.plan import ExecutionPlan


def plan_to_dict(plan: ExecutionPlan) -> dict:
    return {
        "stack": plan.stack,
        "order": plan.order,
        "parameters": plan.parameters,
        "steps": [s.to_dict() for s in plan.steps],
        "exports": plan.exports,
    }


def build_report(plans: List[ExecutionPlan], source_path: str) -> str:
    report = {
        "meta": {
            "generated": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "source": source_path,
            "tool": "stackgraph",
            "version": __version__,
        },
        "stacks": [plan_to_dict(p) for p in plans],
    }
    return json.dumps(report, indent=2)
