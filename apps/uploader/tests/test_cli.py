from pathlib import Path

import pytest

from uploader import cli
from uploader.auth import TokenResponse
from uploader.config import Settings
from uploader.logging_setup import log_file_path
from uploader.services.pipeline.types import PipelineSummary


@pytest.fixture
def log_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    directory = tmp_path / "logs"
    monkeypatch.setenv("UPLOADER_LOG_DIR", str(directory))
    monkeypatch.delenv("SF_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("SF_INSTANCE_URL", raising=False)
    return directory


class _RecordingPipeline:
    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []

    def __call__(self, **kwargs: object) -> PipelineSummary:
        self.calls.append(kwargs)
        return PipelineSummary(
            document_count=5,
            lookup_count=5,
            uploaded_count=5,
            join_record_count=5,
            duration_ms=42,
        )


def test_dry_run_lists_documents_without_remote_calls(
    tower_dir: Path, log_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cli.main(["--documents-dir", str(tower_dir), "--dry-run"])

    out = capsys.readouterr().out.splitlines()
    assert "UNIT\tMarina/Phase P1/Zone East/Building B7/Unit U101\tUnit Plan" in "\n".join(out)
    assert out[-1] == "[doc-upload] dry run parsed documents=5"
    assert log_file_path(log_dir).exists()


def test_run_uses_access_token_flag_and_prints_summary(
    monkeypatch: pytest.MonkeyPatch,
    tower_dir: Path,
    log_dir: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    pipeline = _RecordingPipeline()
    monkeypatch.setattr("uploader.cli.process_documents", pipeline)

    cli.main(
        [
            "--documents-dir",
            str(tower_dir),
            "--access-token",
            "00D!flag",
            "--batch-size",
            "10",
            "--distributions",
        ]
    )

    call = pipeline.calls[0]
    assert call["access_token"] == "00D!flag"
    assert call["documents_dir"] == str(tower_dir)
    assert call["batch_size"] == 10
    assert call["create_distributions"] is True
    out = capsys.readouterr().out
    assert "[doc-upload] progress=10%" in out
    assert out.splitlines()[-1] == (
        "[doc-upload] completed documents=5 lookups=5 uploaded=5 join_records=5 duration_ms=42"
    )


def test_run_falls_back_to_browser_login(
    monkeypatch: pytest.MonkeyPatch, tower_dir: Path, log_dir: Path
) -> None:
    pipeline = _RecordingPipeline()
    monkeypatch.setattr("uploader.cli.process_documents", pipeline)

    class _FakeLogin:
        def __init__(self, settings: Settings) -> None:
            self.settings = settings

        def login(self) -> TokenResponse:
            return TokenResponse(
                access_token="00D!browser", instance_url="https://example.my.salesforce.com/"
            )

    monkeypatch.setattr("uploader.cli.BrowserLoginTokenProvider", _FakeLogin)

    cli.main(["--documents-dir", str(tower_dir), "--no-distributions"])

    call = pipeline.calls[0]
    settings = call["settings"]
    assert call["access_token"] == "00D!browser"
    assert call["create_distributions"] is False
    assert isinstance(settings, Settings)
    assert settings.instance_url == "https://example.my.salesforce.com"


def test_failures_exit_with_status_one(
    tmp_path: Path, log_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--documents-dir", str(tmp_path / "missing"), "--access-token", "00D!flag"])

    assert excinfo.value.code == 1
    err = capsys.readouterr().err
    assert err.startswith("[doc-upload] failed: documents directory does not exist")
    assert "documents directory does not exist" in log_file_path(log_dir).read_text(
        encoding="utf-8"
    )


def test_batch_size_outside_composite_limit_is_rejected(
    tower_dir: Path, log_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--documents-dir", str(tower_dir), "--batch-size", "40", "--access-token", "t"])

    assert excinfo.value.code == 1
    assert "--batch-size must be between 1 and 25" in capsys.readouterr().err
