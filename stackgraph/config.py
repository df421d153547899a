"""
Optional project settings read from 'stackgraph.yaml' in the working directory.

    format: yaml            # default --format for `stackgraph plan`
    output: build/plan.yaml # default --output
    parameters:             # parameter default overrides
      windows-image: /aws/service/ami-windows-latest/Windows_Server-2022-English-Full-Base
"""
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml
from rich.console import Console

console = Console(stderr=True)

CONFIG_FILE = "stackgraph.yaml"
OUTPUT_FORMATS = ["cloudformation", "yaml", "json", "markdown"]


@dataclass
class Settings:
    format: str = "cloudformation"
    output: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)


def load_settings(path: str = CONFIG_FILE) -> Settings:
    """Load settings; a missing file gives defaults, a broken one a warning and defaults."""
    if not os.path.exists(path):
        return Settings()

    try:
        with open(path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        console.print(f"[yellow]Warning:[/yellow] ignoring {path}: {exc}")
        return Settings()

    if not isinstance(raw, dict):
        console.print(f"[yellow]Warning:[/yellow] ignoring {path}: top level must be a mapping")
        return Settings()

    settings = Settings()
    fmt = str(raw.get("format", settings.format)).lower()
    if fmt in OUTPUT_FORMATS:
        settings.format = fmt
    else:
        console.print(f"[yellow]Warning:[/yellow] {path}: unknown format '{fmt}', using {settings.format}")
    settings.output = raw.get("output") or None
    params = raw.get("parameters") or {}
    if isinstance(params, dict):
        settings.parameters = {str(k): v for k, v in params.items()}
    return settings
