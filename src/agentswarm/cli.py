"""Command line interface for agentswarm."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import ConfigError, ProjectConfig
from .errors import AgentSwarmError, TaskTimeoutError
from .runtime import Runtime, build_runtime
from .tasks.base import Task, TaskResult

app = typer.Typer(help="Multi-agent task dispatch CLI")
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, ...)"),
) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load(config_path: Path) -> ProjectConfig:
    try:
        return ProjectConfig.from_file(config_path)
    except ConfigError as exc:
        console.print(f"[bold red]Invalid configuration:[/] {exc}")
        raise typer.Exit(code=1) from exc


def _runtime(config: ProjectConfig) -> Runtime:
    try:
        return build_runtime(config)
    except AgentSwarmError as exc:
        console.print(f"[bold red]Cannot build runtime:[/] {exc}")
        raise typer.Exit(code=1) from exc


def _render_plan(config: ProjectConfig) -> None:
    plan = Table(title="Execution Plan", show_lines=True)
    plan.add_column("Task ID")
    plan.add_column("Type")
    plan.add_column("Priority")
    plan.add_column("Description")
    for spec in config.tasks:
        plan.add_row(spec.id, spec.type, spec.priority, spec.description)
    console.print(plan)


def _output_text(result: TaskResult) -> str:
    if not result.success:
        return f"[red]{result.error}[/]"
    payload = result.result
    if isinstance(payload, dict) and "output" in payload:
        payload = payload["output"]
    return str(payload)


async def _run_tasks(runtime: Runtime, timeout: float) -> Dict[str, Tuple[str, TaskResult]]:
    orchestrator = runtime.orchestrator
    agents = {agent.id: agent.name for agent in runtime.registry.all_agents()}
    progress = Progress(
        SpinnerColumn(style="cyan"),
        TextColumn("[progress.description]{task.description}"),
        TextColumn("{task.fields[status]}"),
        console=console,
        transient=False,
    )
    submitted: Dict[str, Tuple[str, int]] = {}
    results: Dict[str, Tuple[str, TaskResult]] = {}
    with progress:
        for spec in runtime.config.tasks:
            task_id = await orchestrator.submit_task(
                title=spec.title,
                description=spec.description,
                type=spec.type,
                priority=spec.priority,
                required_capabilities=spec.required_capabilities,
                context=spec.context,
                preferred_agent_type=spec.preferred_agent_type,
            )
            row = progress.add_task(f"{spec.id} - {spec.title}", status="[yellow]pending")
            submitted[task_id] = (spec.id, row)

        def on_done(task: Task, result: TaskResult) -> None:
            if task.id not in submitted:
                return
            status = "[green]completed" if result.success else "[red]failed"
            progress.update(submitted[task.id][1], status=status)

        orchestrator.add_listener(on_done)
        try:
            for task_id, (spec_id, _) in submitted.items():
                try:
                    result = await orchestrator.wait_for_task(task_id, timeout)
                except TaskTimeoutError as exc:
                    result = TaskResult.failure(task_id, str(exc))
                results[spec_id] = (agents.get(result.agent_id or "", "-"), result)
        finally:
            orchestrator.remove_listener(on_done)
            await runtime.shutdown()
    return results


@app.command()
def run(
    config_path: Path = typer.Argument(..., help="Path to YAML configuration"),
    timeout: float = typer.Option(300.0, help="Seconds to wait for each task"),
) -> None:
    """Submit the tasks described in the config file and wait for their results."""

    config = _load(config_path)
    if not config.tasks:
        console.print("[bold red]The configuration defines no tasks[/]")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Running project[/] {config.name}")
    _render_plan(config)
    runtime = _runtime(config)
    try:
        results = asyncio.run(_run_tasks(runtime, timeout))
    except AgentSwarmError as exc:
        console.print(f"[bold red]Run failed:[/] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title="Task outputs", show_lines=True)
    table.add_column("Task ID")
    table.add_column("Agent")
    table.add_column("Time (s)", justify="right")
    table.add_column("Output")
    for spec_id, (agent_name, result) in results.items():
        table.add_row(spec_id, agent_name, f"{result.execution_time:.2f}", _output_text(result))
    console.print(table)
    if not all(result.success for _, result in results.values()):
        raise typer.Exit(code=1)


def _parse_inputs(values: List[str]) -> Dict[str, str]:
    inputs: Dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{item}'", param_hint="--input")
        inputs[key.strip()] = value
    return inputs


async def _run_workflow(runtime: Runtime, template_id: str, inputs: Dict[str, str], timeout: Optional[float]):
    try:
        execution_id = await runtime.workflows.execute_workflow(template_id, inputs)
        with console.status(f"Running workflow {template_id}..."):
            return await runtime.workflows.wait_for_execution(execution_id, timeout)
    finally:
        await runtime.shutdown()


@app.command()
def workflow(
    config_path: Path = typer.Argument(..., help="Path to YAML configuration"),
    template_id: str = typer.Argument(..., help="Workflow template id"),
    inputs: List[str] = typer.Option([], "--input", "-i", help="Workflow input as key=value"),
    timeout: Optional[float] = typer.Option(None, help="Seconds to wait for the workflow"),
) -> None:
    """Execute a workflow template and print its per-step results."""

    config = _load(config_path)
    runtime = _runtime(config)
    try:
        execution = asyncio.run(_run_workflow(runtime, template_id, _parse_inputs(inputs), timeout))
    except AgentSwarmError as exc:
        console.print(f"[bold red]Workflow failed to run:[/] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"Workflow {template_id} ({execution.status.value})", show_lines=True)
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Output / Error")
    for step in execution.steps:
        detail = step.error if step.error else execution.results.get(step.step_id, "")
        if isinstance(detail, dict) and "output" in detail:
            detail = detail["output"]
        table.add_row(step.step_id, step.status.value, str(step.attempts), str(detail or ""))
    console.print(table)
    if execution.error:
        console.print(f"[bold red]Error:[/] {execution.error}")
        raise typer.Exit(code=1)


@app.command()
def inspect(config_path: Path = typer.Argument(..., help="Config to inspect")) -> None:
    """Print the providers, agents and workflow templates defined by a config."""

    config = _load(config_path)
    runtime = _runtime(config)
    console.print(f"[bold]Project:[/] {config.name}\n{config.description or ''}")
    console.print("[bold]Providers[/]")
    for name in runtime.router.providers:
        marker = " (default)" if name == runtime.router.default_provider else ""
        console.print(f"- {name}{marker}")
    agents = Table(title="Agents")
    agents.add_column("Name")
    agents.add_column("Type")
    agents.add_column("Skills")
    agents.add_column("Task types")
    agents.add_column("Max tasks", justify="right")
    for agent in runtime.registry.all_agents():
        caps = agent.capabilities
        agents.add_row(
            agent.name,
            agent.type.value,
            ", ".join(caps.skills),
            ", ".join(item.value for item in caps.supported_task_types),
            str(caps.max_concurrent_tasks),
        )
    console.print(agents)
    console.print("[bold]Workflow templates[/]")
    for template in runtime.workflows.list_templates():
        steps = " -> ".join(step.id for step in template.steps)
        console.print(f"- {template.id} {escape(f'[{template.category}]')}: {steps}")
    if config.tasks:
        _render_plan(config)


@app.command()
def serve(
    config_path: Path = typer.Argument(..., help="Path to YAML configuration"),
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Serve the HTTP API for a configuration."""

    import uvicorn

    from .web.server import create_app

    config = _load(config_path)
    runtime = _runtime(config)
    console.print(f"[bold green]Serving[/] {config.name} on http://{host}:{port}")
    uvicorn.run(create_app(runtime), host=host, port=port, log_config=None)


if __name__ == "__main__":  # pragma: no cover
    app()
