"""testbench CLI - run tests against source code in an isolated sandbox.

Usage:
    testbench run SOURCE TESTS          - Run a test file against a source file
    testbench generate SOURCE           - Generate tests with AI
    testbench project list              - List saved projects
    testbench project create NAME       - Create a project
    testbench project show REF          - Show a project's code
    testbench project update REF        - Change a project's name or code
    testbench project delete REF        - Delete a project
    testbench project run REF           - Run a project's tests
    testbench project generate REF      - Generate tests for a project
    testbench config                    - Show effective configuration
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click

from testbench import __version__
from testbench.config import get_config
from testbench.core.errors import TestbenchError
from testbench.core.logging import setup_logging
from testbench.models.execution import ExecutionReport, ExecutionRequest, LogKind, TestStatus
from testbench.models.project import ProjectUpdate
from testbench.projects.registry import ProjectRegistry
from testbench.vm.executor import SandboxExecutor


def _fail(error: TestbenchError):
    click.echo(error.format_user_friendly(), err=True)
    sys.exit(1)


def _registry() -> ProjectRegistry:
    config = get_config()
    config.paths.ensure()
    return ProjectRegistry(config.paths.projects_db)


def _executor(timeout: Optional[float], restricted: bool) -> SandboxExecutor:
    executor = SandboxExecutor.from_config(get_config())
    if timeout is None and not restricted:
        return executor
    execution = get_config().execution
    return SandboxExecutor(
        timeout_seconds=timeout or execution.timeout_seconds,
        memory_mb=execution.memory_mb,
        restricted=restricted or execution.restricted,
        local_modules=execution.local_modules,
        start_method=execution.start_method,
    )


def render_logs(report: ExecutionReport) -> list[str]:
    """Console output with describe groups indented."""
    lines = []
    depth = 0
    for entry in report.logs:
        if entry.kind == LogKind.GROUP_END:
            depth = max(depth - 1, 0)
            continue
        indent = "  " * depth
        if entry.kind == LogKind.GROUP:
            lines.append(f"{indent}▸ {entry.message}")
            depth += 1
        elif entry.kind == LogKind.LOG:
            lines.append(f"{indent}{entry.message}")
        else:
            lines.append(f"{indent}[{entry.kind.value}] {entry.message}")
    return lines


def print_report(report: ExecutionReport, show_logs: bool = False, as_json: bool = False):
    """Print a report in human or JSON form."""
    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json", by_alias=True), indent=2))
        return

    if not report.success:
        click.echo(f"❌ {report.error_message}", err=True)

    for outcome in report.results:
        if outcome.status == TestStatus.PASS:
            click.echo(f"✅ {outcome.name} ({outcome.duration_ms}ms)")
        else:
            click.echo(f"❌ {outcome.name} ({outcome.duration_ms}ms)")
            click.echo(f"   {outcome.error_message}")

    if show_logs and report.logs:
        click.echo("\nOutput:")
        for line in render_logs(report):
            click.echo(f"  {line}")

    if report.success:
        click.echo(
            f"\nResults: {report.passed_count} passed, {report.failed_count} failed "
            f"({len(report.results)} total)"
        )


@click.group()
@click.version_option(version=__version__, prog_name="testbench")
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity to stderr")
def cli(verbose: bool):
    """testbench - Write code, write tests, run them in a sandbox.

    Tests use describe(), it() and expect(), and run in a separate process
    with a time limit so infinite loops cannot hang the caller.
    """
    config = get_config()
    if verbose or config.log.file_enabled:
        setup_logging(
            level="DEBUG" if verbose else config.log.level,
            format_type=config.log.format,
            log_dir=config.paths.logs_dir,
            file_enabled=config.log.file_enabled,
            console_enabled=verbose,
        )


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("tests", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--timeout", "-t", type=float, help="Time limit in seconds")
@click.option("--restricted", is_flag=True, help="Compile with RestrictedPython")
@click.option("--logs", "show_logs", is_flag=True, help="Show captured console output")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def run(source: Path, tests: Path, timeout: float, restricted: bool, show_logs: bool, as_json: bool):
    """Run TESTS against SOURCE.

    Exits with status 1 if the run fails or any test fails.

    Examples:
        testbench run factorial.py factorial_tests.py
        testbench run app.py tests.py --timeout 10 --logs
    """
    request = ExecutionRequest(
        source_code=source.read_text(),
        test_code=tests.read_text(),
    )
    report = _executor(timeout, restricted).run(request)
    print_report(report, show_logs=show_logs, as_json=as_json)

    if not report.all_passed:
        sys.exit(1)


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--instruction", "-i", help="Generate one test for this request instead of a suite")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write tests to a file")
def generate(source: Path, instruction: Optional[str], output: Optional[Path]):
    """Generate tests for SOURCE with AI.

    Examples:
        testbench generate factorial.py -o factorial_tests.py
        testbench generate factorial.py -i "check negative input"
    """
    try:
        text = asyncio.run(_generate(source.read_text(), instruction))
    except TestbenchError as e:
        _fail(e)

    if output:
        output.write_text(text + "\n")
        click.echo(f"✅ Tests written to {output}")
    else:
        click.echo(text)


async def _generate(source_code: str, instruction: Optional[str]) -> str:
    from testbench.core.gemini_client import GeminiClient

    client = GeminiClient.from_config(get_config())
    return await client.generate_tests(source_code, instruction)


@cli.group()
def project():
    """Manage saved projects."""
    pass


@project.command("list")
def project_list():
    """List saved projects."""
    async def _list():
        registry = _registry()
        await registry.ensure_default()
        return await registry.list_all()

    projects = asyncio.run(_list())
    for item in projects:
        click.echo(item.to_summary_string())


@project.command("create")
@click.argument("name")
@click.option("--source", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Source file")
@click.option("--tests", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Test file")
def project_create(name: str, source: Optional[Path], tests: Optional[Path]):
    """Create a project called NAME."""
    try:
        created = asyncio.run(_registry().create(
            name,
            source_code=source.read_text() if source else None,
            test_code=tests.read_text() if tests else "",
        ))
    except TestbenchError as e:
        _fail(e)
    click.echo(f"✅ Created project {created.name} ({created.id})")


@project.command("show")
@click.argument("ref")
@click.option("--source", "part", flag_value="source", help="Show only the source code")
@click.option("--tests", "part", flag_value="tests", help="Show only the test code")
def project_show(ref: str, part: Optional[str]):
    """Show the code of project REF (id, id prefix or name)."""
    try:
        found = asyncio.run(_registry().resolve(ref))
    except TestbenchError as e:
        _fail(e)

    if part == "source":
        click.echo(found.source_code)
        return
    if part == "tests":
        click.echo(found.test_code)
        return

    click.echo(f"# {found.name} ({found.id})")
    click.echo("\n## Source\n")
    click.echo(found.source_code)
    click.echo("\n## Tests\n")
    click.echo(found.test_code)


@project.command("update")
@click.argument("ref")
@click.option("--name", help="New name")
@click.option("--source", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Replace source code")
@click.option("--tests", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Replace test code")
def project_update(ref: str, name: Optional[str], source: Optional[Path], tests: Optional[Path]):
    """Change the name or code of project REF."""
    changes = ProjectUpdate(
        name=name,
        source_code=source.read_text() if source else None,
        test_code=tests.read_text() if tests else None,
    )

    async def _update():
        registry = _registry()
        found = await registry.resolve(ref)
        return await registry.update(found.id, changes)

    try:
        updated = asyncio.run(_update())
    except TestbenchError as e:
        _fail(e)
    click.echo(f"✅ Updated project {updated.name}")


@project.command("delete")
@click.argument("ref")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def project_delete(ref: str, yes: bool):
    """Delete project REF."""
    registry = _registry()
    try:
        found = asyncio.run(registry.resolve(ref))
    except TestbenchError as e:
        _fail(e)

    if not yes and not click.confirm(f"Delete project '{found.name}'?"):
        return

    asyncio.run(registry.delete(found.id))
    click.echo(f"Deleted project {found.name}")


@project.command("run")
@click.argument("ref")
@click.option("--timeout", "-t", type=float, help="Time limit in seconds")
@click.option("--logs", "show_logs", is_flag=True, help="Show captured console output")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def project_run(ref: str, timeout: Optional[float], show_logs: bool, as_json: bool):
    """Run the tests of project REF."""
    try:
        found = asyncio.run(_registry().resolve(ref))
    except TestbenchError as e:
        _fail(e)

    request = ExecutionRequest(source_code=found.source_code, test_code=found.test_code)
    report = _executor(timeout, False).run(request)
    print_report(report, show_logs=show_logs, as_json=as_json)

    if not report.all_passed:
        sys.exit(1)


@project.command("generate")
@click.argument("ref")
@click.option("--instruction", "-i", help="Add one test for this request instead of replacing the suite")
def project_generate(ref: str, instruction: Optional[str]):
    """Generate tests for project REF and save them.

    Without --instruction the project's tests are replaced by a generated
    suite; with it, a single generated test is appended.
    """
    from testbench.core.gemini_client import append_test

    async def _run():
        registry = _registry()
        found = await registry.resolve(ref)
        if not found.source_code.strip():
            raise TestbenchError("No source code to generate tests from")
        text = await _generate(found.source_code, instruction)
        test_code = append_test(found.test_code, text) if instruction else text
        return await registry.update(found.id, ProjectUpdate(test_code=test_code))

    try:
        updated = asyncio.run(_run())
    except TestbenchError as e:
        _fail(e)

    message = "Test added" if instruction else "Tests generated"
    click.echo(f"✅ {message} for {updated.name}")


@cli.command()
def config():
    """Show effective configuration."""
    conf = get_config()

    click.echo("Current configuration:")
    click.echo(f"  Timeout:       {conf.execution.timeout_seconds:g}s")
    click.echo(f"  Memory limit:  {conf.execution.memory_mb or 'off'}{'MB' if conf.execution.memory_mb else ''}")
    click.echo(f"  Restricted:    {conf.execution.restricted}")
    click.echo(f"  Local modules: {', '.join(conf.execution.local_modules)}")
    click.echo(f"  Model:         {conf.api.gemini_model}")
    click.echo(f"  API Key:       {conf.api.gemini_api_key[:8]}..." if conf.api.gemini_api_key else "  API Key:       (not set)")
    click.echo(f"  Data Dir:      {conf.paths.data_dir}")

    for issue in conf.validate():
        click.echo(f"  ⚠️  {issue}", err=True)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
