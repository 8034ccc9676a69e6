from __future__ import annotations

import asyncio
import json
import logging
import shutil
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer

from tubedoc.ai.result_cache import RESULT_TTL_DAYS
from tubedoc.cache import FileCache
from tubedoc.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from tubedoc.errors import TubedocError
from tubedoc.logging_config import configure_logging
from tubedoc.models import ConvertResult, PipelineState
from tubedoc.orchestrator import Orchestrator, build_providers, work_root
from tubedoc.pipeline.context import ProgressCallback

app = typer.Typer(help="Convert YouTube videos into screenshot-and-text documents.")
config_app = typer.Typer(help="Configuration commands.")
cache_app = typer.Typer(help="Cache maintenance commands.")

app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")

logger = logging.getLogger(__name__)

CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_PATH,
    "--config",
    "-c",
    envvar="TUBEDOC_CONFIG",
    help="Path to YAML configuration file.",
)


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _apply_run_options(
    settings: Settings,
    output_dir: Path | None,
    output_format: str | None,
    dev: bool,
    summary: bool | None,
) -> Settings:
    update: dict[str, Any] = {}
    if output_dir is not None or output_format is not None:
        output = settings.output.model_dump()
        if output_dir is not None:
            output["directory"] = output_dir
        if output_format is not None:
            output["format"] = output_format
        update["output"] = output
    if dev:
        update["dev"] = {"enabled": True}
    if summary is not None:
        update["summary"] = {**settings.summary.model_dump(), "enabled": summary}
    if not update:
        return settings
    return Settings.model_validate({**settings.model_dump(), **update})


def _progress_printer() -> ProgressCallback:
    last_step: list[str] = [""]

    def _print(state: PipelineState) -> None:
        if state.current_step == last_step[0]:
            return
        last_step[0] = state.current_step
        typer.echo(f"[{state.progress:3d}%] {state.current_step}", err=True)

    return _print


def _result_payload(result: ConvertResult) -> dict[str, Any]:
    return {
        "status": "ok" if result.success else "failed",
        "video_id": result.metadata.id,
        "title": result.metadata.title,
        "output_path": str(result.output_path),
        "stats": asdict(result.stats),
    }


def _cache_stores(settings: Settings) -> dict[str, FileCache]:
    root = settings.cache_root
    return {
        "files": FileCache(root / "files", ttl_days=settings.cache.ttl_days),
        "ai": FileCache(root / "ai", ttl_days=RESULT_TTL_DAYS),
    }


def _clear_work_dirs(settings: Settings) -> int:
    root = work_root(settings)
    if not root.is_dir():
        return 0
    directories = [path for path in root.iterdir() if path.is_dir()]
    for path in directories:
        shutil.rmtree(path)
    return len(directories)


@config_app.command("show")
def show_config(config_path: Path = CONFIG_OPTION) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@app.command("run")
def run_video(
    url: str = typer.Argument(..., help="YouTube video URL or bare video id."),
    config_path: Path = CONFIG_OPTION,
    output_dir: Path | None = typer.Option(None, "--output", "-o", help="Directory for generated documents."),
    output_format: str | None = typer.Option(None, "--format", "-f", help="Output format: json, pdf, md, html."),
    summary: bool | None = typer.Option(None, "--summary/--no-summary", help="Enable or disable AI summaries."),
    dev: bool = typer.Option(False, "--dev", help="Constrained mode: few chapters, low quality, sampled AI calls."),
    trace: bool = typer.Option(False, "--trace", help="Print per-stage timings after the run."),
) -> None:
    """Convert one video into a document."""

    settings = _apply_run_options(_bootstrap(config_path), output_dir, output_format, dev, summary)
    try:
        orchestrator = Orchestrator(settings, build_providers(settings), trace_enabled=trace)
        orchestrator.on_progress(_progress_printer())
        result = asyncio.run(orchestrator.process(url))
    except (TubedocError, RuntimeError, ValueError) as exc:
        logger.error("Conversion failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    payload = _result_payload(result)
    if trace:
        payload["trace"] = [asdict(step) for step in orchestrator.last_trace]
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@app.command("playlist")
def run_playlist(
    url: str = typer.Argument(..., help="YouTube playlist URL."),
    config_path: Path = CONFIG_OPTION,
    output_dir: Path | None = typer.Option(None, "--output", "-o", help="Directory for generated documents."),
    output_format: str | None = typer.Option(None, "--format", "-f", help="Output format: json, pdf, md, html."),
    summary: bool | None = typer.Option(None, "--summary/--no-summary", help="Enable or disable AI summaries."),
    dev: bool = typer.Option(False, "--dev", help="Constrained mode: few chapters, low quality, sampled AI calls."),
) -> None:
    """Convert every video of a playlist; failed videos are reported and skipped."""

    settings = _apply_run_options(_bootstrap(config_path), output_dir, output_format, dev, summary)
    try:
        orchestrator = Orchestrator(settings, build_providers(settings))
        orchestrator.on_progress(_progress_printer())
        results = asyncio.run(orchestrator.process_playlist(url))
    except (TubedocError, RuntimeError, ValueError) as exc:
        logger.error("Playlist failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        json.dumps(
            {"converted": len(results), "results": [_result_payload(result) for result in results]},
            indent=2,
            ensure_ascii=False,
        )
    )


@cache_app.command("stats")
def cache_stats(config_path: Path = CONFIG_OPTION) -> None:
    """Print entry counts and sizes of the on-disk caches."""

    settings = _bootstrap(config_path)
    payload = {
        name: {"directory": str(store.directory), **asdict(store.stats())}
        for name, store in _cache_stores(settings).items()
    }
    typer.echo(json.dumps(payload, indent=2))


@cache_app.command("clear")
def cache_clear(config_path: Path = CONFIG_OPTION) -> None:
    """Delete every cache entry and retained per-video download directory."""

    settings = _bootstrap(config_path)
    removed = {name: store.clear() for name, store in _cache_stores(settings).items()}
    removed["work"] = _clear_work_dirs(settings)
    typer.echo(json.dumps({"removed": removed}, indent=2))


@cache_app.command("cleanup")
def cache_cleanup(config_path: Path = CONFIG_OPTION) -> None:
    """Delete expired and unreadable cache entries."""

    settings = _bootstrap(config_path)
    removed = {name: store.cleanup() for name, store in _cache_stores(settings).items()}
    typer.echo(json.dumps({"removed": removed}, indent=2))


if __name__ == "__main__":
    app()
