# cli.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import click

from boundaryci.config import load_config
from boundaryci.dag import build_dag, topo_levels
from boundaryci.errors import BuildError
from boundaryci.model import BuildStep
from boundaryci.pipeline import default_steps
from boundaryci.runner import load_workflow, plan, run_target
from boundaryci.step_workflows.header import transform_header
from boundaryci.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "boundaryci_workflow.py"


def discover_steps(workflow_arg: str | None, root: Path, name: str | None = None) -> List[BuildStep]:
    """
    Resolve the step graph to run.

    Order:
      1. --workflow PATH
      2. boundaryci_workflow.py in the project root
      3. the default graph built from [tool.boundaryci] config
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or drop --workflow to use the default targets:\n  boundaryci run build-ffi",
            )
            sys.exit(1)
        _warn_name_ignored(name, workflow_path)
        console.print_debug(f"Using workflow {workflow_path}")
        return load_workflow(workflow_path)

    default_workflow = root / DEFAULT_WORKFLOW
    if default_workflow.exists():
        _warn_name_ignored(name, default_workflow)
        console.print_debug(f"Using workflow {default_workflow}")
        return load_workflow(default_workflow)

    config = load_config(root, overrides={"name": name})
    console.print_debug(f"Using default targets for '{config.name}'")
    return default_steps(config)


def _warn_name_ignored(name: str | None, workflow_path: Path) -> None:
    if name:
        get_console().print_warning(
            f"--name {name} is ignored: {workflow_path} defines the steps"
        )


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """boundaryci: build, verify and publish a library across its FFI boundaries."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("target")
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@click.option("--root", default=".", show_default=True, help="Project root")
@click.option("--name", default=None, help="Library base name (overrides [tool.boundaryci] name)")
@click.option("--dry-run", is_flag=True, default=False, help="Pass --dry-run to the publish tool")
@click.pass_context
def run(ctx, target, workflow, root, name, dry_run):
    """Run TARGET and every step it depends on."""
    console = get_console()
    root_p = Path(root)

    try:
        steps = discover_steps(workflow, root_p, name)
        result = run_target(steps, target, root=root_p, dry_run=dry_run)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except (ValueError, TypeError, FileNotFoundError) as e:
        console.print_error("Invalid workflow", str(e))
        if ctx.obj.get("debug", False):
            import traceback
            traceback.print_exc()
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_results(result.statuses)

    if not result.ok:
        error = result.error
        details = str(error).split("\n")[1:] if isinstance(error, BuildError) else None
        console.print_error(
            f"Step failed: {result.failed_step}",
            str(error).split("\n")[0] if error else "unknown failure",
            details=details,
        )
        sys.exit(1)


@cli.command(name="plan")
@click.argument("target")
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@click.option("--root", default=".", show_default=True, help="Project root")
@click.option("--name", default=None, help="Library base name (overrides [tool.boundaryci] name)")
def plan_cmd(target, workflow, root, name):
    """Print the steps TARGET would run, in order."""
    console = get_console()
    try:
        order = plan(discover_steps(workflow, Path(root), name), target)
    except (ValueError, TypeError, FileNotFoundError) as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)
    console.print_plan(target, order)


@cli.command()
@click.option("--workflow", default=None, help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)")
@click.option("--root", default=".", show_default=True, help="Project root")
@click.option("--name", default=None, help="Library base name (overrides [tool.boundaryci] name)")
def targets(workflow, root, name):
    """List available targets, grouped by dependency stage."""
    console = get_console()
    try:
        steps = discover_steps(workflow, Path(root), name)
        levels = topo_levels(*build_dag(steps))
    except (ValueError, TypeError, FileNotFoundError) as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)

    by_name = {s.name: s for s in steps}
    for idx, level in enumerate(levels, start=1):
        console.print_header(f"Stage {idx}")
        for step_name in level:
            step = by_name[step_name]
            needs = f" (needs: {', '.join(step.needs)})" if step.needs else ""
            console.print_info(f"  {step_name}{needs}  {step.description}".rstrip())


@cli.command(name="transform-header")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the public header here (default: stdout)")
def transform_header_cmd(input_path, output):
    """Normalize a generated binding header into the public header."""
    console = get_console()
    try:
        result = transform_header(input_path.read_text(encoding="utf-8"))
    except BuildError as e:
        console.print_error("Header transformation failed", str(e))
        sys.exit(1)

    if output is None:
        click.echo(result, nl=False)
    else:
        output.write_text(result, encoding="utf-8")
        console.print_info(f"Wrote {output}")


if __name__ == "__main__":
    cli()
