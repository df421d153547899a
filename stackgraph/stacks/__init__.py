from stackgraph.stacks import base_template

BUILTIN_STACKS = {
    "base-template": base_template.build_stack,
}
