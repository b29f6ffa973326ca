"""
Assetflow CLI

- build: production build of every pipeline
- run: run selected pipelines once
- watch: initial build, then rebuild on change with live reload
- list: show declared pipelines
- check: validate the pipeline file
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from assetflow_engine.devserver import ReloadHub, create_app, run_server
from assetflow_engine.notify import CompositeNotifier, LoggingNotifier, ReloadNotifier
from assetflow_engine.pipeline.domain.models import BuildMode, PipelineRun, PipelineSpec, RunState
from assetflow_engine.pipeline.infrastructure.change_detector import ChangeDetector
from assetflow_engine.pipeline.infrastructure.config_loader import load_pipelines
from assetflow_engine.pipeline.infrastructure.executor import PipelineExecutor
from assetflow_engine.pipeline.infrastructure.file_watcher import FileWatcher
from assetflow_engine.pipeline.infrastructure.registry import PipelineRegistry
from assetflow_engine.pipeline.infrastructure.scheduler import BuildScheduler
from assetflow_shared.common.exceptions import ConfigurationError
from assetflow_shared.infra.config import Settings
from assetflow_shared.infra.observability import setup_logging

app = typer.Typer(name="assetflow", help="Front-end asset pipelines with incremental rebuilds", add_completion=False)
console = Console()

STATE_STYLES = {
    RunState.SUCCEEDED: "green",
    RunState.FAILED: "red",
    RunState.SKIPPED: "yellow",
}

RootOption = typer.Option(None, "--root", "-r", help="Project root (default: ASSETFLOW_ROOT or .)")
ConfigOption = typer.Option(None, "--config", "-c", help="Pipeline file (default: assetflow.yaml)")


def _bootstrap(root: Path | None, config: Path | None, mode: str | None = None) -> Settings:
    overrides = {}
    if root is not None:
        overrides["root"] = str(root)
    if config is not None:
        overrides["config_file"] = str(config)
    if mode is not None:
        overrides["mode"] = mode
    settings = Settings(**overrides)
    setup_logging(level=settings.observability.log_level, format=settings.observability.log_format)
    return settings


def _build_mode(settings: Settings) -> BuildMode:
    try:
        return BuildMode.from_string(settings.mode)
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(2)


def _load(settings: Settings, mode: BuildMode) -> list[PipelineSpec]:
    try:
        specs = load_pipelines(
            settings.config_path,
            mode=mode,
            default_debounce_ms=settings.watcher.default_debounce_ms,
        )
        PipelineRegistry(specs).validate()
    except ConfigurationError as e:
        console.print(f"[red]❌ Configuration error: {e}[/red]")
        raise typer.Exit(2)
    return specs


def _print_runs(runs: list[PipelineRun]) -> None:
    table = Table(title="Pipeline runs")
    table.add_column("Pipeline", style="cyan")
    table.add_column("State")
    table.add_column("Duration", justify="right")
    table.add_column("Outputs", justify="right")
    table.add_column("Error")

    for run in runs:
        style = STATE_STYLES.get(run.state, "white")
        duration = f"{run.duration_ms:.0f} ms" if run.duration_ms is not None else "-"
        error = f"[{run.failed_stage}] {run.error}" if run.failed_stage else (run.error or "")
        table.add_row(run.name, f"[{style}]{run.state.value}[/{style}]", duration, str(len(run.outputs)), error)

    console.print(table)


async def _run_once(settings: Settings, specs: list[PipelineSpec], mode: BuildMode, names: list[str]) -> list[PipelineRun]:
    scheduler = BuildScheduler(
        specs,
        executor=PipelineExecutor(settings.root_path, mode),
        notifier=LoggingNotifier(),
        history_size=settings.scheduler.history_size,
    )
    if names:
        for name in names:
            await scheduler.trigger(name)
    else:
        await scheduler.trigger_all()

    try:
        await scheduler.wait_idle(timeout=settings.scheduler.build_timeout_s)
    finally:
        await scheduler.stop()
    return scheduler.history


def _execute(settings: Settings, mode: BuildMode, names: list[str]) -> None:
    specs = _load(settings, mode)
    try:
        runs = asyncio.run(_run_once(settings, specs, mode, names))
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(2)
    except asyncio.TimeoutError:
        console.print(f"[red]❌ Build did not finish within {settings.scheduler.build_timeout_s:.0f}s[/red]")
        raise typer.Exit(1)

    _print_runs(runs)
    if any(run.state is not RunState.SUCCEEDED for run in runs):
        raise typer.Exit(1)
    console.print("[green]✅ Complete![/green]")


@app.command()
def build(
    root: Path = RootOption,
    config: Path = ConfigOption,
    mode: str = typer.Option("production", "--mode", "-m", help="development or production"),
):
    """
    Build every pipeline once.

    Examples:
        assetflow build
        assetflow build --mode development
    """
    settings = _bootstrap(root, config, mode)
    _execute(settings, _build_mode(settings), [])


@app.command()
def run(
    names: list[str] = typer.Argument(..., help="Pipeline names"),
    root: Path = RootOption,
    config: Path = ConfigOption,
    mode: str = typer.Option(None, "--mode", "-m", help="development or production"),
):
    """
    Run selected pipelines once.

    Examples:
        assetflow run styles scripts
    """
    settings = _bootstrap(root, config, mode)
    build_mode = _build_mode(settings)
    known = {spec.name for spec in _load(settings, build_mode)}
    unknown = [name for name in names if name not in known]
    if unknown:
        console.print(f"[red]❌ Unknown pipeline(s): {', '.join(unknown)}[/red]")
        raise typer.Exit(2)
    _execute(settings, build_mode, names)


@app.command()
def watch(
    root: Path = RootOption,
    config: Path = ConfigOption,
    port: int = typer.Option(None, "--port", "-p", help="Dev server port"),
    serve: bool = typer.Option(True, "--serve/--no-serve", help="Start the dev server"),
):
    """
    Build everything, then rebuild changed pipelines and live-reload the browser.
    """
    settings = _bootstrap(root, config)
    mode = _build_mode(settings)
    specs = _load(settings, mode)
    devserver = settings.devserver.model_copy(update={"port": port} if port else {})

    async def _watch():
        hub = ReloadHub()
        notifier = CompositeNotifier([LoggingNotifier(), ReloadNotifier(hub, strip_prefix=devserver.base_dir)])
        scheduler = BuildScheduler(
            specs,
            executor=PipelineExecutor(settings.root_path, mode),
            notifier=notifier,
            history_size=settings.scheduler.history_size,
        )
        detector = ChangeDetector(settings.root_path, max_queue_size=settings.watcher.max_queue_size)
        watcher = FileWatcher(settings.root_path, detector, exclude_patterns=settings.watcher.exclude_list)

        await scheduler.trigger_all()
        await scheduler.wait_idle()
        _print_runs(scheduler.history)

        tasks = []
        if settings.watcher.enabled:
            await watcher.start()
            tasks.append(scheduler.consume(detector.events()))
        if serve and devserver.enabled:
            web_app = create_app(settings.root_path / devserver.base_dir, hub, host=devserver.host, port=devserver.port)
            tasks.append(run_server(web_app, devserver.host, devserver.port))
            console.print(f"[cyan]🌐 http://{devserver.host}:{devserver.port}[/cyan]")

        try:
            await asyncio.gather(*tasks)
        finally:
            await watcher.stop()
            await scheduler.stop()

    console.print(f"\n[cyan]👀 Watching: {settings.root_path}[/cyan]\n")
    try:
        asyncio.run(_watch())
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(2)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@app.command("list")
def list_pipelines(
    root: Path = RootOption,
    config: Path = ConfigOption,
    mode: str = typer.Option(None, "--mode", "-m", help="development or production"),
):
    """Show declared pipelines."""
    settings = _bootstrap(root, config, mode)
    specs = _load(settings, _build_mode(settings))

    table = Table(title=f"Pipelines ({settings.config_path.name})")
    table.add_column("Name", style="cyan")
    table.add_column("Sources")
    table.add_column("Depends on")
    table.add_column("Debounce", justify="right")
    table.add_column("Stages")

    for spec in specs:
        table.add_row(
            spec.name,
            "\n".join(spec.source_patterns),
            ", ".join(sorted(spec.depends_on)) or "-",
            f"{spec.debounce_ms} ms",
            " → ".join(spec.stage_names),
        )
    console.print(table)


@app.command()
def check(
    root: Path = RootOption,
    config: Path = ConfigOption,
):
    """Validate the pipeline file in both build modes."""
    settings = _bootstrap(root, config)
    for build_mode in BuildMode:
        specs = _load(settings, build_mode)
    console.print(f"[green]✅ {len(specs)} pipelines OK[/green]")


if __name__ == "__main__":
    app()
