"""Tests for podupload models."""
import pytest

from podupload.exceptions import ConfigurationError
from podupload.models import (
    MB,
    DurationResult,
    ErrorKind,
    ResolvedAsset,
    SessionError,
    SessionState,
    StorageHandle,
    UploadConfig,
    UploadRequest,
    UploadSession,
)

from conftest import make_request


class TestUploadRequest:
    def test_from_path_guesses_type(self, tmp_path):
        path = tmp_path / "show.mp3"
        path.write_bytes(b"\xff\xfb" * 10)
        request = UploadRequest.from_path(path)
        assert request.mime_type == "audio/mpeg"
        assert request.size_bytes == 20
        assert request.filename == "show.mp3"

    def test_from_path_unknown_type(self, tmp_path):
        path = tmp_path / "blob.unknownext"
        path.write_bytes(b"x")
        assert UploadRequest.from_path(path).mime_type == "application/octet-stream"

    def test_explicit_type_wins(self, tmp_path):
        path = tmp_path / "show.bin"
        path.write_bytes(b"x")
        assert UploadRequest.from_path(path, mime_type="audio/ogg").mime_type == "audio/ogg"


class TestSession:
    def test_progress_never_decreases(self):
        session = UploadSession(request=make_request())
        assert session.advance(10) is True
        assert session.advance(5) is False
        assert session.advance(10) is False
        assert session.advance(150) is True
        assert session.progress_percent == 100

    def test_snapshot_is_a_copy(self):
        session = UploadSession(request=make_request())
        snapshot = session.snapshot()
        session.state = SessionState.UPLOADING
        assert snapshot.state is SessionState.IDLE
        assert session.snapshot().state is SessionState.UPLOADING

    def test_snapshot_to_dict(self):
        session = UploadSession(request=make_request())
        session.state = SessionState.COMPLETE
        session.progress_percent = 100
        session.step_label = "Upload complete"
        session.result = ResolvedAsset(
            public_url="https://cdn.example.com/a.mp3",
            duration_seconds=125.4,
            storage_handle=StorageHandle("kg2abc", "storage"),
        )
        assert session.snapshot().to_dict() == {
            "state": "complete",
            "progressPercent": 100,
            "stepLabel": "Upload complete",
            "result": {
                "url": "https://cdn.example.com/a.mp3",
                "durationSeconds": 125.4,
                "storageHandle": "kg2abc",
                "metadataWarning": False,
            },
        }

    def test_error_to_dict(self):
        session = UploadSession(request=make_request())
        session.state = SessionState.ERROR
        session.error = SessionError(ErrorKind.TIMEOUT, "Upload did not finish within 60s")
        data = session.snapshot().to_dict()
        assert data["error"] == {"kind": "timeout", "message": "Upload did not finish within 60s"}
        assert "result" not in data

    def test_terminal_states(self):
        assert {s for s in SessionState if s.is_terminal} == {
            SessionState.COMPLETE,
            SessionState.ERROR,
            SessionState.CANCELLED,
        }

    def test_retryable_kinds(self):
        assert {k for k in ErrorKind if k.retryable} == {
            ErrorKind.TIMEOUT,
            ErrorKind.NETWORK_ERROR,
            ErrorKind.SERVER_ERROR,
        }

    def test_failed_duration(self):
        result = DurationResult.failed("Timed out after 10s")
        assert result.seconds == 0.0
        assert result.warning is True


class TestUploadConfig:
    def test_defaults(self):
        config = UploadConfig()
        assert config.max_file_size_bytes == 50 * MB
        assert config.allowed_mime_prefix == "audio/"
        assert config.upload_deadline == 60.0
        assert config.resolve_max_retries == 3
        assert config.resolve_retry_delay == 1.0
        assert config.metadata_timeout == 10.0
        assert config.progress_tick_interval == 0.5
        assert config.progress_ceiling_during_upload == 45

    def test_profiles(self):
        production = UploadConfig.for_profile("production")
        assert production.resolve_max_retries == 5
        assert production.resolve_retry_delay_ms == 2000

        serverless = UploadConfig.for_profile("serverless", backend="cdn")
        assert serverless.upload_deadline_ms > UploadConfig().upload_deadline_ms
        assert serverless.backend == "cdn"

        with pytest.raises(ConfigurationError):
            UploadConfig.for_profile("staging")

    def test_backend_and_image_presets(self):
        assert UploadConfig.for_backend("cdn").max_file_size_bytes == 32 * MB
        assert UploadConfig.for_backend("storage").max_file_size_bytes == 50 * MB

        image = UploadConfig.image_defaults()
        assert image.allowed_mime_prefix == "image/"
        assert image.max_file_size_bytes == 4 * MB
        assert image.probe_duration is False

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_file_size_bytes": 0},
            {"resolve_max_retries": 0},
            {"upload_deadline_ms": -1},
            {"resolve_retry_delay_ms": -5},
            {"progress_ceiling_during_upload": 101},
            {"progress_tick_step": 0},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError):
            UploadConfig(**overrides)

    def test_from_env(self):
        config = UploadConfig.from_env(
            {
                "PODUPLOAD_PROFILE": "production",
                "PODUPLOAD_BACKEND": "cdn",
                "PODUPLOAD_CDN_API_KEY": "sk_live_test",
                "PODUPLOAD_UPLOAD_DEADLINE_MS": "90_000",
                "PODUPLOAD_PROBE_DURATION": "false",
                "PODUPLOAD_HTTP_TIMEOUT": "15.5",
                "PODUPLOAD_RESOLVE_RETRY_DELAY_MS": "",
                "UNRELATED": "1",
            }
        )
        assert config.backend == "cdn"
        assert config.cdn_api_key == "sk_live_test"
        assert config.upload_deadline_ms == 90_000
        assert config.probe_duration is False
        assert config.http_timeout == 15.5
        assert config.resolve_max_retries == 5
        assert config.resolve_retry_delay_ms == 2000

    def test_from_env_invalid(self):
        with pytest.raises(ConfigurationError, match="PODUPLOAD_RESOLVE_MAX_RETRIES"):
            UploadConfig.from_env({"PODUPLOAD_RESOLVE_MAX_RETRIES": "three"})

    def test_with_overrides(self):
        config = UploadConfig().with_overrides(upload_deadline_ms=5000)
        assert config.upload_deadline == 5.0
