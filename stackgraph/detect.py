import json
import os

import yaml

# Loader that tolerates custom YAML tags (!Ref, !GetAtt, !Param, ...) without
# raising an error, so detect_format can read both stack files and CFN templates.
class _TagTolerantLoader(yaml.SafeLoader):
    pass

_TagTolerantLoader.add_multi_constructor(
    "!",
    lambda loader, suffix, node: loader.construct_yaml_str(node)
    if isinstance(node, yaml.ScalarNode) else None,
)


def _classify(doc) -> str:
    if not isinstance(doc, dict):
        return "unknown"
    if "AWSTemplateFormatVersion" in doc:
        return "cloudformation"
    resources = doc.get("Resources")
    if isinstance(resources, dict) and any(
        isinstance(v, dict) and str(v.get("Type", "")).startswith("AWS::")
        for v in resources.values()
    ):
        return "cloudformation"
    resources = doc.get("resources")
    if isinstance(resources, dict) and all(
        isinstance(v, dict) and "kind" in v for v in resources.values()
    ):
        return "stackfile"
    return "unknown"


def detect_format(filepath: str) -> str:
    """
    Return 'stackfile', 'cloudformation', or 'unknown'.
    """
    _, ext = os.path.splitext(filepath.lower())

    try:
        if ext == ".json":
            with open(filepath, encoding="utf-8") as fh:
                return _classify(json.load(fh))
        if ext in (".yaml", ".yml"):
            with open(filepath, encoding="utf-8") as fh:
                return _classify(yaml.load(fh, Loader=_TagTolerantLoader))
    except (OSError, ValueError, yaml.YAMLError):
        return "unknown"

    return "unknown"
