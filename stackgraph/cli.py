"""
stackgraph CLI entry point.
"""
import json
import os
import sys
from typing import Dict, List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from stackgraph import __version__
from stackgraph.config import OUTPUT_FORMATS, load_settings
from stackgraph.detect import detect_format
from stackgraph.emitters import cloudformation as cfn_emitter
from stackgraph.emitters import json_emitter, markdown
from stackgraph.models.errors import StackFileError, StackGraphError
from stackgraph.parsers import cloudformation, stackfile
from stackgraph.plan import ExecutionPlan, RecordingBackend, emit
from stackgraph.stack import App, Stack
from stackgraph.stacks import BUILTIN_STACKS

console = Console(stderr=True)


_STACK_EXTENSIONS = (".yaml", ".yml", ".json")


def _collect_files(paths: Tuple[str, ...]) -> List[str]:
    """Explicit files are kept as given; directories contribute their YAML and JSON files."""
    found: List[str] = []
    for p in paths:
        if os.path.isfile(p):
            found.append(p)
        elif os.path.isdir(p):
            for root, dirs, fnames in os.walk(p):
                dirs.sort()
                found.extend(
                    os.path.join(root, f) for f in sorted(fnames) if f.lower().endswith(_STACK_EXTENSIONS)
                )
        else:
            console.print(f"[yellow]Warning:[/yellow] '{p}' does not exist, skipping.")
    return found


def _parse_files(file_paths: List[str]) -> List[Stack]:
    stacks: List[Stack] = []
    for fp in file_paths:
        fmt = detect_format(fp)
        if fmt == "stackfile":
            stacks.append(stackfile.parse_file(fp))
        elif fmt == "cloudformation":
            stacks.append(cloudformation.parse_file(fp))
        else:
            console.print(f"[dim]Skipping unsupported file:[/dim] {fp}")
    return stacks


def _parse_params(values: Tuple[str, ...]) -> Dict[str, str]:
    params = {}
    for item in values:
        if "=" not in item:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--param")
        key, value = item.split("=", 1)
        params[key.strip()] = value
    return params


def _load_app(paths: Tuple[str, ...], builtins: Tuple[str, ...]) -> App:
    """Build an App from files and built-in stacks; exits 2 on unusable input."""
    file_paths = _collect_files(paths)
    if not file_paths and not builtins:
        console.print("[red]No stack files found.[/red]")
        sys.exit(2)

    app = App()
    try:
        with console.status(f"[bold]Loading {len(file_paths) + len(builtins)} stack source(s)…"):
            for name in builtins:
                app.add_stack(BUILTIN_STACKS[name]())
            for stack in _parse_files(file_paths):
                app.add_stack(stack)
    except StackFileError as exc:
        console.print(f"[red]Input error:[/red] {exc}")
        sys.exit(2)
    except StackGraphError as exc:
        console.print(f"[red]Graph error:[/red] {exc}")
        sys.exit(1)

    if not len(app):
        console.print("[yellow]No stacks found in the provided paths.[/yellow]")
        sys.exit(2)
    return app


def _synthesize(app: App, overrides: Dict[str, str]) -> List[ExecutionPlan]:
    try:
        with console.status("[bold]Resolving dependency graph…"):
            return app.synthesize(overrides)
    except StackGraphError as exc:
        console.print(f"[red]Graph error:[/red] {exc}")
        sys.exit(1)


def _render(plans: List[ExecutionPlan], fmt: str, source_label: str) -> str:
    if fmt == "json":
        return json_emitter.build_report(plans, source_label)
    if fmt == "markdown":
        return "\n\n".join(markdown.build_report(p, source_label) for p in plans)
    if fmt == "yaml":
        return "---\n".join(cfn_emitter.build_report(p, "yaml") for p in plans)
    if len(plans) == 1:
        return cfn_emitter.build_report(plans[0], "json")
    return json.dumps({p.stack: cfn_emitter.build_template(p) for p in plans}, indent=2)


def _order_table(plan: ExecutionPlan) -> Table:
    tbl = Table(title=f"Deployment order: {plan.stack}", show_header=True, header_style="bold")
    tbl.add_column("#", style="dim", width=4)
    tbl.add_column("Resource", width=28)
    tbl.add_column("Kind", width=20)
    tbl.add_column("Depends on")
    for i, step in enumerate(plan.steps, 1):
        deps = ", ".join(
            f"{d}*" if d in step.references else d for d in step.depends_on
        )
        tbl.add_row(str(i), step.name, step.kind.value, deps or "-")
    tbl.caption = "* inferred from a deferred reference"
    return tbl


_sources = [
    click.argument("paths", nargs=-1, type=click.Path()),
    click.option(
        "--builtin", "builtins",
        multiple=True,
        type=click.Choice(sorted(BUILTIN_STACKS)),
        help="Include a built-in stack (repeatable).",
    ),
]


def _with_sources(fn):
    for decorator in reversed(_sources):
        fn = decorator(fn)
    return fn


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(__version__)
@click.pass_context
def cli(ctx):
    """stackgraph: dependency-ordered infrastructure plans."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit()


@cli.command()
@_with_sources
@click.option(
    "--format", "output_format",
    type=click.Choice(OUTPUT_FORMATS, case_sensitive=False),
    default=None,
    help="Output format (default: cloudformation, or 'format' in stackgraph.yaml).",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Write the plan to this file (default: stdout).",
)
@click.option(
    "--param", "params",
    multiple=True,
    help="Override a parameter default, KEY=VALUE (repeatable).",
)
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable rich terminal color output.",
)
def plan(
    paths: Tuple[str, ...],
    builtins: Tuple[str, ...],
    output_format: Optional[str],
    output: Optional[str],
    params: Tuple[str, ...],
    no_color: bool,
) -> None:
    """
    Compile stacks into ordered deployment plans.

    PATHS can be stack files, CloudFormation templates, or directories.
    """
    settings = load_settings()
    stderr = Console(stderr=True, no_color=no_color)
    fmt = (output_format or settings.format).lower()
    output = output or settings.output
    overrides = dict(settings.parameters)
    overrides.update(_parse_params(params))

    app = _load_app(paths, builtins)
    plans = _synthesize(app, overrides)
    stderr.print(
        f"Planned [bold]{sum(len(p.steps) for p in plans)}[/bold] resources "
        f"in [bold]{len(plans)}[/bold] stack(s)."
    )

    source_label = ", ".join(list(paths) + [f"builtin:{b}" for b in builtins])
    try:
        content = _render(plans, fmt, source_label)
    except StackGraphError as exc:
        console.print(f"[red]Graph error:[/red] {exc}")
        sys.exit(1)

    if output:
        with open(output, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(content)
        stderr.print(f"Plan written to [bold]{output}[/bold]")
    else:
        click.echo(content)


@cli.command()
@_with_sources
def order(paths: Tuple[str, ...], builtins: Tuple[str, ...]) -> None:
    """Show the deployment order of each stack."""
    app = _load_app(paths, builtins)
    for p in _synthesize(app, load_settings().parameters):
        Console().print(_order_table(p))


@cli.command()
@_with_sources
def exports(paths: Tuple[str, ...], builtins: Tuple[str, ...]) -> None:
    """Show the values each stack publishes."""
    app = _load_app(paths, builtins)
    for p in _synthesize(app, load_settings().parameters):
        tbl = Table(title=f"Exports: {p.stack}", show_header=True, header_style="bold")
        tbl.add_column("Name", width=20)
        tbl.add_column("Value")
        tbl.add_column("Description")
        for name, value in p.exports.items():
            rendered = value if isinstance(value, str) else json.dumps(value)
            tbl.add_row(name, rendered, p.export_descriptions.get(name, ""))
        Console().print(tbl)


@cli.command()
@_with_sources
def validate(paths: Tuple[str, ...], builtins: Tuple[str, ...]) -> None:
    """Check that every stack forms a valid, acyclic graph."""
    app = _load_app(paths, builtins)
    for p in _synthesize(app, load_settings().parameters):
        console.print(
            f"[green]OK[/green] {p.stack}: {len(p.steps)} resources, {len(p.exports)} exports"
        )


@cli.command()
@_with_sources
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Submit to a recording backend that only reports what would be applied.",
)
def apply(paths: Tuple[str, ...], builtins: Tuple[str, ...], dry_run: bool) -> None:
    """Submit plans step by step to a provisioning backend."""
    if not dry_run:
        console.print("[red]Only --dry-run is available; live provisioning belongs to the deployment backend.[/red]")
        sys.exit(2)

    app = _load_app(paths, builtins)
    plans = _synthesize(app, load_settings().parameters)
    backend = RecordingBackend()
    failed = False
    for p in plans:
        try:
            results = emit(p, app.stack(p.stack), backend)
        except StackGraphError as exc:
            console.print(f"[red]Graph error:[/red] {exc}")
            sys.exit(1)
        for r in results:
            mark = "[green]applied[/green]" if r.success else "[red]failed[/red]"
            console.print(f"  {p.stack} / {r.name}: {mark} {r.message}")
            failed = failed or not r.success
    sys.exit(1 if failed else 0)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
