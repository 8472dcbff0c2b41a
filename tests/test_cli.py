"""Tests for podupload CLI helpers."""
import json
import logging
import os
from unittest.mock import patch

import pytest

from podupload.cli import CLIError, _build_config, _exit_code, _load_env_file, _setup_logging, run_cli
from podupload.cli_progress import SessionProgressDisplay, _format_duration
from podupload.models import (
    MB,
    ErrorKind,
    ResolvedAsset,
    SessionError,
    SessionSnapshot,
    SessionState,
    StorageHandle,
    UploadConfig,
)


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logging.disable(logging.NOTSET)
    logging.getLogger().setLevel(logging.WARNING)


def make_snapshot(state, progress=0, **kwargs):
    return SessionSnapshot(session_id="s1", state=state, progress_percent=progress, step_label=state.value, **kwargs)


def test_load_env_file(tmp_path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "# storage deployment",
                "PODUPLOAD_STORAGE_API_URL=https://happy-otter-123.convex.cloud",
                "PODUPLOAD_CDN_API_KEY='sk_live_test'",
                "export PODUPLOAD_PROFILE=production",
            ]
        ),
        encoding="utf-8",
    )

    monkeypatch.delenv("PODUPLOAD_STORAGE_API_URL", raising=False)
    monkeypatch.delenv("PODUPLOAD_CDN_API_KEY", raising=False)
    monkeypatch.setenv("PODUPLOAD_PROFILE", "serverless")

    _load_env_file(env_path)

    assert os.environ["PODUPLOAD_STORAGE_API_URL"] == "https://happy-otter-123.convex.cloud"
    assert os.environ["PODUPLOAD_CDN_API_KEY"] == "sk_live_test"
    # Existing variables are not overridden
    assert os.environ["PODUPLOAD_PROFILE"] == "serverless"


def test_load_env_file_missing(tmp_path):
    with pytest.raises(CLIError):
        _load_env_file(tmp_path / "missing.env")


def test_setup_logging_defaults_to_silent(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    mode = _setup_logging(debug=False, silent=False, log_level=None)
    assert mode == "silent"
    assert logging.getLogger().isEnabledFor(logging.CRITICAL) is False
    logging.disable(logging.NOTSET)


def test_setup_logging_debug_mode(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    mode = _setup_logging(debug=True, silent=False, log_level=None)
    assert mode == "DEBUG"
    assert logging.getLogger().isEnabledFor(logging.DEBUG) is True
    logging.disable(logging.NOTSET)


def test_setup_logging_from_env(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert _setup_logging(debug=False, silent=False, log_level=None) == "WARNING"
    assert _setup_logging(debug=False, silent=True, log_level=None) == "silent"
    logging.disable(logging.NOTSET)


def test_build_config_options_override_env():
    env = {"PODUPLOAD_BACKEND": "storage", "PODUPLOAD_CDN_API_KEY": "sk_live_test"}
    config = _build_config(env, backend="cdn", profile="production", deadline=90)
    assert config.backend == "cdn"
    assert config.max_file_size_bytes == 32 * MB
    assert config.upload_deadline_ms == 90_000
    assert config.resolve_max_retries == 5


def test_build_config_explicit_size_for_cdn():
    env = {"PODUPLOAD_BACKEND": "cdn", "PODUPLOAD_MAX_FILE_SIZE_BYTES": str(10 * MB)}
    assert _build_config(env, None, None, None).max_file_size_bytes == 10 * MB


def test_build_config_size_follows_backend_preset():
    for backend in ("storage", "cdn"):
        config = _build_config({"PODUPLOAD_CDN_API_KEY": "sk_live_test"}, backend, None, None)
        assert config.max_file_size_bytes == UploadConfig.for_backend(backend).max_file_size_bytes
    assert _build_config({}, "storage", None, None).max_file_size_bytes == 50 * MB


def test_silent_help_matches_behaviour(capsys):
    with pytest.raises(SystemExit):
        run_cli(["--help"])
    help_text = " ".join(capsys.readouterr().out.split())
    assert "Disable all logging" in help_text
    assert "Only print errors" not in help_text


def test_build_config_errors():
    with pytest.raises(CLIError):
        _build_config({}, None, None, deadline=0)
    with pytest.raises(CLIError):
        _build_config({"PODUPLOAD_UPLOAD_DEADLINE_MS": "soon"}, None, None, None)


def test_exit_codes():
    assert _exit_code(make_snapshot(SessionState.COMPLETE, 100)) == 0
    assert _exit_code(make_snapshot(SessionState.ERROR)) == 1
    assert _exit_code(make_snapshot(SessionState.CANCELLED)) == 130


def test_run_cli_missing_source(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert run_cli(["--silent", str(tmp_path / "nope.mp3")]) == 1
    assert "not a file" in capsys.readouterr().err


def test_run_cli_json_output(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "episode.mp3"
    source.write_bytes(b"\xff\xfb" * 64)
    final = make_snapshot(
        SessionState.COMPLETE,
        100,
        result=ResolvedAsset("https://cdn.example.com/episode.mp3", 125.4, StorageHandle("kg2abc")),
    )

    async def fake_run(path, config, as_json):
        assert path == source
        assert as_json is True
        print(json.dumps(final.to_dict()))
        return 0

    with patch("podupload.cli._run_upload", new=fake_run):
        code = run_cli(["--silent", "--json", str(source)])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["result"]["durationSeconds"] == 125.4


def test_run_cli_keyboard_interrupt(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "episode.mp3"
    source.write_bytes(b"\xff\xfb")

    async def interrupted(path, config, as_json):
        raise KeyboardInterrupt

    with patch("podupload.cli._run_upload", new=interrupted):
        assert run_cli(["--silent", "--json", str(source)]) == 130


def test_progress_display_summary(capsys):
    display = SessionProgressDisplay("episode.mp3")
    display.on_snapshot(make_snapshot(SessionState.UPLOADING, 20))
    display.on_snapshot(
        make_snapshot(
            SessionState.COMPLETE,
            100,
            result=ResolvedAsset("https://cdn.example.com/episode.mp3", 125.4, StorageHandle("kg2abc")),
        )
    )

    assert display.final.state is SessionState.COMPLETE
    out = capsys.readouterr().out
    assert "https://cdn.example.com/episode.mp3" in out
    assert "2:05" in out


def test_progress_display_failure(capsys):
    display = SessionProgressDisplay("episode.mp3")
    display.on_snapshot(make_snapshot(SessionState.ERROR, error=SessionError(ErrorKind.TIMEOUT, "too slow")))
    out = capsys.readouterr().out
    assert "timeout" in out
    assert "too slow" in out


def test_format_duration():
    assert _format_duration(125.4) == "2:05"
    assert _format_duration(3725) == "1:02:05"
