from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import tubedoc.cli as cli
from tubedoc.cache import FileCache
from tubedoc.config import Settings
from tubedoc.errors import ErrorCode, TubedocError
from tubedoc.models import ConvertResult, ConvertStats, VideoMetadata
from tubedoc.pipeline.context import TraceStep


def _result(tmp_path: Path, video_id: str = "dQw4w9WgXcQ") -> ConvertResult:
    return ConvertResult(
        success=True,
        output_path=tmp_path / f"{video_id}.json",
        metadata=VideoMetadata(id=video_id, title="Caching Deep Dive", channel="Conf Talks", duration=180),
        stats=ConvertStats(pages=3, file_size=1024, duration=180, screenshot_count=3),
    )


class _FakeOrchestrator:
    instances: list[_FakeOrchestrator] = []
    result: ConvertResult | None = None
    error: Exception | None = None
    playlist: list[ConvertResult] = []

    def __init__(self, settings, providers, *, trace_enabled: bool = False) -> None:
        self.settings = settings
        self.trace_enabled = trace_enabled
        self.last_trace = [TraceStep(name="metadata", ms=1.5)] if trace_enabled else []
        _FakeOrchestrator.instances.append(self)

    def on_progress(self, callback) -> None:
        pass

    async def process(self, url: str) -> ConvertResult:
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result

    async def process_playlist(self, url: str) -> list[ConvertResult]:
        return self.playlist


@pytest.fixture
def patched_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    settings = Settings.model_validate(
        {
            "output": {"directory": str(tmp_path / "out")},
            "cache": {"directory": str(tmp_path / "cache")},
        }
    )
    _FakeOrchestrator.instances = []
    monkeypatch.setattr(cli, "_bootstrap", lambda _: settings)
    monkeypatch.setattr(cli, "build_providers", lambda _: object())
    monkeypatch.setattr(cli, "Orchestrator", _FakeOrchestrator)
    return settings


def test_run_prints_result_json(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, patched_cli) -> None:
    result_value = _result(tmp_path)
    monkeypatch.setattr(_FakeOrchestrator, "result", result_value)

    result = CliRunner().invoke(cli.app, ["run", "https://youtu.be/dQw4w9WgXcQ"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["status"] == "ok"
    assert payload["video_id"] == "dQw4w9WgXcQ"
    assert payload["stats"]["pages"] == 3
    assert "trace" not in payload


def test_run_includes_trace_when_requested(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, patched_cli) -> None:
    monkeypatch.setattr(_FakeOrchestrator, "result", _result(tmp_path))

    result = CliRunner().invoke(cli.app, ["run", "dQw4w9WgXcQ", "--trace"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["trace"] == [{"name": "metadata", "ms": 1.5}]


def test_run_options_override_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, patched_cli) -> None:
    monkeypatch.setattr(_FakeOrchestrator, "result", _result(tmp_path))

    result = CliRunner().invoke(
        cli.app,
        ["run", "dQw4w9WgXcQ", "--output", str(tmp_path / "docs"), "--format", "md", "--dev", "--summary"],
    )

    assert result.exit_code == 0, result.output
    used = _FakeOrchestrator.instances[0].settings
    assert used.output.directory == tmp_path / "docs"
    assert used.output.format == "md"
    assert used.dev.enabled is True
    assert used.summary.enabled is True
    assert patched_cli.summary.enabled is False


def test_run_prints_clean_error_without_traceback(monkeypatch: pytest.MonkeyPatch, patched_cli) -> None:
    monkeypatch.setattr(
        _FakeOrchestrator,
        "error",
        TubedocError(ErrorCode.VIDEO_NOT_FOUND, "Video not found: dQw4w9WgXcQ"),
    )

    result = CliRunner().invoke(cli.app, ["run", "dQw4w9WgXcQ"])

    assert result.exit_code == 1
    assert "Error: [VIDEO_NOT_FOUND] Video not found: dQw4w9WgXcQ" in result.output
    assert "Traceback" not in result.output


def test_playlist_reports_converted_count(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, patched_cli) -> None:
    monkeypatch.setattr(
        _FakeOrchestrator,
        "playlist",
        [_result(tmp_path, "aaaaaaaaaaa"), _result(tmp_path, "ccccccccccc")],
    )

    result = CliRunner().invoke(cli.app, ["playlist", "https://www.youtube.com/playlist?list=PLabc"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["converted"] == 2
    assert [row["video_id"] for row in payload["results"]] == ["aaaaaaaaaaa", "ccccccccccc"]


def test_config_show_reads_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TUBEDOC_CONFIG", raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda _: None)
    config_path = tmp_path / "config.yaml"
    config_path.write_text("screenshot:\n  interval: 120\nlogging:\n  level: WARNING\n", encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["config", "show", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["screenshot"]["interval"] == 120
    assert payload["subtitle"]["languages"] == ["ko", "en"]


def test_cache_commands_manage_stores_and_work_dirs(patched_cli) -> None:
    files = FileCache(patched_cli.cache_root / "files")
    ai = FileCache(patched_cli.cache_root / "ai")
    files.set("subtitle:a:en", {"x": 1})
    files.set("subtitle:b:en", {"x": 2})
    ai.set("unified", {"y": 1})
    (patched_cli.cache_root / "files" / "broken.json").write_text("{", encoding="utf-8")
    work = patched_cli.cache_root / "work" / "dQw4w9WgXcQ"
    work.mkdir(parents=True)
    (work / "video_dQw4w9WgXcQ.mp4").write_bytes(b"video")
    runner = CliRunner()

    stats = json.loads(runner.invoke(cli.app, ["cache", "stats"]).output)
    assert stats["files"]["entries"] == 3
    assert stats["ai"]["entries"] == 1
    assert stats["files"]["size_bytes"] > 0

    cleanup = json.loads(runner.invoke(cli.app, ["cache", "cleanup"]).output)
    assert cleanup == {"removed": {"files": 1, "ai": 0}}

    cleared = json.loads(runner.invoke(cli.app, ["cache", "clear"]).output)
    assert cleared == {"removed": {"files": 2, "ai": 1, "work": 1}}
    assert not work.exists()
    assert files.stats().entries == 0
