"""Command line entry point for indexing themes and assembling context."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from .context import ContextEngine, SearchConfig, VectorSearch, hybrid_search
from .memory.files import collect_theme_files
from .memory.schema import FileRecord, ThemeMap
from .models.offline import OfflineProvider
from .theme_map import ModelSummarizer, ThemeMapService, ThemeMapStore, format_lookup_result
from .utils.slug import slugify

APP_HELP = "Theme agent CLI: index storefront themes, look up features, assemble model context."
DEFAULT_CONFIG_NAME = "config.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "id": "",
        "name": "",
        "theme_root": ".",
    },
    "paths": {
        "data": "data",
        "theme_maps": "data/theme_maps",
        "logs": "data/logs",
    },
    "context": {
        "token_budget": 16000,
        "engine_cache_size": 8,
    },
    "search": {
        "vector_enabled": True,
        "similarity_threshold": 0.3,
        "rrf_k": 60,
        "vector_weight": 0.7,
        "keyword_weight": 0.3,
    },
    "theme_map": {
        "debounce_seconds": 2.0,
        "summary_batch_size": 8,
        "cache_size": 32,
        "max_targets": 15,
        "confident_threshold": 3.0,
    },
    "policy": {
        "edit_sla_tool_calls": 8,
        "edit_sla_abort_tool_calls": 16,
        "max_stuck_recoveries": 2,
        "read_only_iteration_limit": 3,
        "post_edit_stagnation_threshold": 2,
        "max_rethinks": 1,
        "finalization_soft_cap": 24,
        "max_iterations": 12,
        "tiers": {
            "aggressive": {
                "read_only_iteration_limit": 1,
                "post_edit_stagnation_threshold": 1,
                "max_rethinks": 2,
                "edit_sla_tool_calls": 12,
                "finalization_soft_cap": 40,
                "max_iterations": 20,
            }
        },
    },
}

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _copy_config_template() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise typer.BadParameter(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.")
        raise typer.Exit(code=1)

    return data


def _resolve(config_path: Path, value: Any, default: str) -> Path:
    path = Path(str(value or default))
    if not path.is_absolute():
        path = (config_path.parent / path).resolve()
    return path


def _project_id(config: Dict[str, Any]) -> str:
    project = config.get("project") or {}
    return str(project.get("id") or "") or slugify(str(project.get("name") or ""), fallback="theme")


def _theme_root(config: Dict[str, Any], config_path: Path) -> Path:
    project = config.get("project") or {}
    return _resolve(config_path, project.get("theme_root"), ".")


def _store(config: Dict[str, Any], config_path: Path) -> ThemeMapStore:
    paths = config.get("paths") or {}
    return ThemeMapStore(_resolve(config_path, paths.get("theme_maps"), "data/theme_maps"))


def _theme_files(config: Dict[str, Any], config_path: Path) -> List[FileRecord]:
    root = _theme_root(config, config_path)
    if not root.is_dir():
        typer.echo(f"Theme root not found: {root}")
        raise typer.Exit(code=1)
    return collect_theme_files(root)


def _load_map(service: ThemeMapService, project_id: str) -> ThemeMap:
    theme_map = service.get(project_id)
    if theme_map is None:
        typer.echo(f"No theme map for project '{project_id}'. Run `themeagent index` first.")
        raise typer.Exit(code=1)
    return theme_map


@app.command()
def init(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the agent configuration file."),
    project_id: Optional[str] = typer.Option(None, "--project-id", help="Identifier used for stored theme maps."),
    theme_root: Optional[str] = typer.Option(None, "--theme-root", help="Directory holding the theme files."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    data = _copy_config_template()
    if project_id:
        data["project"]["id"] = project_id
        data["project"]["name"] = project_id
    if theme_root:
        data["project"]["theme_root"] = theme_root
    _write_config(config_path, data)
    typer.echo(f"Wrote configuration to {config_path}.")


@app.command()
def index(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the agent configuration file."),
) -> None:
    """Build and persist the theme map for the configured theme."""
    config_path = Path(config)
    config_data = load_config(config_path)
    files = _theme_files(config_data, config_path)
    store = _store(config_data, config_path)
    service = ThemeMapService.from_config(config_data, store=store)
    try:
        theme_map = service.build(_project_id(config_data), files)
    finally:
        service.close()
    typer.echo(
        f"Indexed {theme_map.file_count} of {len(files)} file(s), version {theme_map.version}"
        f" -> {store.path_for(theme_map.project_id)}"
    )
    if theme_map.framework:
        typer.echo(f"Framework: {theme_map.framework} ({', '.join(theme_map.framework_signals)})")


@app.command()
def lookup(
    query: str = typer.Argument(..., help="What you are looking for, in plain words."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the agent configuration file."),
    active_file: Optional[str] = typer.Option(None, "--active-file", help="Path of the file open in the editor."),
) -> None:
    """Find the files and line ranges relevant to a request."""
    config_path = Path(config)
    config_data = load_config(config_path)
    service = ThemeMapService.from_config(config_data, store=_store(config_data, config_path))
    project_id = _project_id(config_data)
    _load_map(service, project_id)
    result = service.lookup(project_id, query, active_file=active_file)
    service.close()
    if result is not None:
        typer.echo(format_lookup_result(result))


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the agent configuration file."),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Maximum number of results."),
) -> None:
    """Rank theme files by keyword and vector similarity."""
    config_path = Path(config)
    config_data = load_config(config_path)
    files = _theme_files(config_data, config_path)
    search_config = SearchConfig.from_config(config_data)
    results = hybrid_search(
        query,
        files,
        limit,
        vector=VectorSearch(enabled=search_config.vector_enabled),
        config=search_config,
    )
    if not results:
        typer.echo("No matching files.")
        return
    for result in results:
        typer.echo(f"{result.score:.4f}  {result.source.value:<7}  {result.path}")


@app.command()
def context(
    message: str = typer.Argument(..., help="User message to assemble context for."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the agent configuration file."),
    active_file: Optional[str] = typer.Option(None, "--active-file", help="Path of the file open in the editor."),
    budget: Optional[int] = typer.Option(None, "--budget", min=1, help="Token budget override."),
) -> None:
    """Select the files that fit the token budget for a message."""
    config_path = Path(config)
    config_data = load_config(config_path)
    engine = ContextEngine.from_config(config_data)
    engine.index_files(_theme_files(config_data, config_path))
    active = engine.find_by_path(active_file) if active_file else None
    result = engine.select_relevant_files_with_search(
        message,
        active_file_id=active.id if active else None,
        max_tokens=budget,
    )
    typer.echo(f"Budget: {result.budget.used_tokens}/{result.budget.max_tokens} tokens")
    for record in result.files:
        typer.echo(f"+ {record.path}")
    for file_id in result.excluded:
        typer.echo(f"- {file_id} (over budget)")


@app.command()
def enrich(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the agent configuration file."),
) -> None:
    """Attach summaries to the stored theme map using the offline provider."""
    config_path = Path(config)
    config_data = load_config(config_path)
    files = _theme_files(config_data, config_path)
    service = ThemeMapService.from_config(config_data, store=_store(config_data, config_path))
    project_id = _project_id(config_data)
    try:
        service.ensure(project_id, files)
        theme_map = service.enrich(project_id, files, ModelSummarizer(OfflineProvider()))
    finally:
        service.close()
    if theme_map is None:
        typer.echo("Nothing to enrich.")
        raise typer.Exit(code=1)
    summarized = sum(1 for entry in theme_map.files.values() if entry.summary)
    typer.echo(f"{summarized} of {theme_map.file_count} file(s) have summaries.")


@app.command()
def status(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the agent configuration file."),
) -> None:
    """Show the state of the stored theme map."""
    config_path = Path(config)
    config_data = load_config(config_path)
    service = ThemeMapService.from_config(config_data, store=_store(config_data, config_path))
    theme_map = _load_map(service, _project_id(config_data))
    service.close()
    typer.echo(f"Project: {theme_map.project_id}")
    typer.echo(f"Status: {theme_map.status.value}")
    typer.echo(f"Version: {theme_map.version}")
    typer.echo(f"Files: {theme_map.file_count}")
    typer.echo(f"Framework: {theme_map.framework or 'unknown'}")
    typer.echo(f"Generated: {theme_map.generated_at.isoformat()}")
    if theme_map.entry_points:
        typer.echo(f"Entry points: {', '.join(theme_map.entry_points[:10])}")


if __name__ == "__main__":
    app()
