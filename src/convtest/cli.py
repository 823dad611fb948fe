# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List

import click

from convtest.compare import DEFAULT_MAX_DIFF_CHARS, Comparator
from convtest.config import IMAGE_ENV, OUTPUT_DIRNAME, resolve_config
from convtest.dag import ALL, TargetGraph, topo_levels
from convtest.errors import (
    ConfigurationError,
    CyclicDependency,
    HarnessError,
    RuntimeEnvironmentError,
    UnknownTarget,
)
from convtest.model import ExecutionResult, Status, Target
from convtest.runner import ExitCode, RunReport, clean_output, load_suite, output_workspace, run_target, run_targets
from convtest.step_workflows.docker import DEFAULT_TIMEOUT, DockerExecutor
from convtest.suite import default_targets
from convtest.ui.console import Console, get_console, set_console


def _load_targets(suite_file: str | None) -> List[Target]:
    if suite_file is None:
        return default_targets()
    try:
        return load_suite(suite_file)
    except (FileNotFoundError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Could not load suite {suite_file}: {e}") from e


def _resolve_selection(suite_file: str | None, names: tuple[str, ...]) -> tuple[TargetGraph, List[Target]]:
    graph = TargetGraph(_load_targets(suite_file))
    return graph, graph.resolve_many(names or (ALL,))


def _fail(title: str, exc: Exception) -> None:
    console = get_console()
    suggestion = None
    if isinstance(exc, UnknownTarget) and exc.known:
        suggestion = "Known targets:\n  " + "\n  ".join(exc.known)
    console.print_error(title, str(exc), suggestion=suggestion)
    sys.exit(ExitCode.ERROR)


suite_option = click.option(
    "--suite",
    "suite_file",
    default=None,
    type=click.Path(dir_okay=False),
    help="Python file defining targets() or TARGETS (defaults to the built-in pandoc image suite)",
)
fixtures_option = click.option(
    "--fixtures-dir",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory mounted at /data; holds fixtures, output/ and expected/",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces, docker commands and probe results)",
)
@click.pass_context
def cli(ctx, debug):
    """convtest — checks a document-conversion image against fixture documents."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("targets", nargs=-1)
@click.option("--image", envvar=IMAGE_ENV, default=None, help=f"Image under test (required; also read from ${IMAGE_ENV})")
@fixtures_option
@click.option("--diff-tool", default=None, help="External diff command, run as '<cmd> <expected> -' (default: exact comparison)")
@click.option("--keep-output", is_flag=True, default=False, help="Do not clear output/ after the run")
@click.option("--workers", default=1, show_default=True, type=int, help="Number of targets run in parallel")
@click.option("--timeout", default=DEFAULT_TIMEOUT, show_default=True, type=float, help="Per-invocation timeout in seconds")
@click.option("--max-diff", default=DEFAULT_MAX_DIFF_CHARS, show_default=True, type=int, help="Truncate diff text beyond this many characters (0: never)")
@click.option("--fail-fast/--no-fail-fast", default=False, show_default=True, help="Stop scheduling new targets after the first failure")
@click.option("--docker", default="docker", show_default=True, help="Container runtime CLI")
@suite_option
@click.pass_context
def run(ctx, targets, image, fixtures_dir, diff_tool, keep_output, workers, timeout, max_diff, fail_fast, docker, suite_file):
    """Run TARGETS (default: all) against the image."""
    console = get_console()

    try:
        config = resolve_config(
            image=image,
            fixtures_dir=Path(fixtures_dir),
            diff_tool=diff_tool,
            keep_output=keep_output,
            workers=workers,
            timeout=timeout,
            max_diff_chars=max_diff,
            fail_fast=fail_fast,
            docker=docker,
        )
    except ConfigurationError as e:
        _fail("Configuration error", e)

    try:
        graph, selected = _resolve_selection(suite_file, targets)
    except (UnknownTarget, CyclicDependency) as e:
        _fail("Invalid target selection", e)
    except ConfigurationError as e:
        _fail("Invalid suite", e)

    executor = DockerExecutor(config.image, config.fixtures_dir, timeout=config.timeout, docker=config.docker)
    comparator = Comparator(diff_tool=config.diff_tool, max_chars=config.max_diff_chars)

    console.print_run_started(config.image, str(config.fixtures_dir), len(selected))

    report = RunReport()
    try:
        executor.check_available()
        with output_workspace(config.output_dir, keep=config.keep_output):
            report = run_targets(
                selected,
                graph,
                lambda t: run_target(t, executor, comparator, config.expected_dir),
                max_workers=config.workers,
                fail_fast=config.fail_fast,
                on_start=console.print_target_start,
                on_finish=console.print_target_result,
            )
    except RuntimeEnvironmentError as e:
        report = RunReport(
            results={
                t.name: ExecutionResult(target=t.name, status=Status.BLOCKED, reason="container runtime unavailable")
                for t in selected
            },
            fatal=e,
        )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(ExitCode.ERROR)

    console.print_results(list(report.results.values()), report.fatal)
    if report.fatal is not None:
        hint = getattr(report.fatal, "hint", None)
        console.print_error("Run aborted", str(report.fatal), suggestion=hint)

    sys.exit(int(report.exit_code))


@cli.command("list")
@click.argument("targets", nargs=-1)
@suite_option
def list_targets(targets, suite_file):
    """Show the stages TARGETS (default: all) would run in."""
    console = get_console()
    try:
        graph, selected = _resolve_selection(suite_file, targets)
    except HarnessError as e:
        _fail("Invalid target selection", e)

    descriptions = {t.name: t.description for t in selected if t.description}
    console.print_plan(topo_levels(graph, selected), descriptions)


@cli.command()
@fixtures_option
def clean(fixtures_dir):
    """Remove everything under output/."""
    output_dir = Path(fixtures_dir).expanduser().resolve() / OUTPUT_DIRNAME
    clean_output(output_dir)
    get_console().print_info(f"Cleaned {output_dir}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
