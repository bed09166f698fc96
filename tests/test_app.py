"""
Tests for the skillhub command line.
"""

import json
import sys

import pytest

from skillhub import __version__
from skillhub import app
from skillhub.blobs import HttpBlobStore, LocalBlobStore
from skillhub.database import Skill, SkillVersion
from skillhub.env import Settings


@pytest.fixture
def cli(tmp_path, db_path, monkeypatch):
    """Point the CLI at the test database and blob directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SKILLHUB_DB_PATH", str(db_path))
    monkeypatch.setenv("SKILLHUB_BLOB_DIR", str(tmp_path / "blobs"))
    monkeypatch.delenv("SKILLHUB_BLOB_URL", raising=False)
    configured = []
    monkeypatch.setattr(app.logger, "configure", lambda **kwargs: configured.append(kwargs))

    def run(*argv):
        monkeypatch.setattr(sys, "argv", ["skillhub", *argv])
        app.main()

    run.configured = configured
    return run


def _stdout_json(capsys):
    return json.loads(capsys.readouterr().out)


class TestBuildService:
    def test_local_blobs_by_default(self, tmp_path):
        settings = Settings(tmp_path / "x.db", tmp_path / "blobs", None, "INFO", tmp_path)
        service = app.build_service(settings)
        assert isinstance(service.blobs, LocalBlobStore)
        service.store.dispose()

    def test_http_blobs_when_url_set(self, tmp_path):
        settings = Settings(tmp_path / "x.db", tmp_path / "blobs", "https://b.example.com", "INFO", tmp_path)
        service = app.build_service(settings)
        assert isinstance(service.blobs, HttpBlobStore)
        service.store.dispose()


class TestCli:
    def test_version(self, cli, capsys):
        cli("--version")
        assert capsys.readouterr().out.strip() == __version__

    def test_logger_configured_from_env(self, cli, monkeypatch):
        monkeypatch.setenv("SKILLHUB_LOG_LEVEL", "debug")
        cli("--version")
        assert cli.configured[-1]["level"] == "DEBUG"

    def test_init_db(self, cli, tmp_path, monkeypatch, capsys):
        target = tmp_path / "fresh" / "registry.db"
        monkeypatch.setenv("SKILLHUB_DB_PATH", str(target))

        cli("init-db")

        assert target.exists()
        assert "Initialized" in capsys.readouterr().out

    def test_missing_database(self, cli, tmp_path, monkeypatch):
        monkeypatch.setenv("SKILLHUB_DB_PATH", str(tmp_path / "nope.db"))

        with pytest.raises(SystemExit, match="Database not found"):
            cli("backfill-summaries", "--user", "root")

    def test_backfill_summaries(self, cli, capsys, store, registry):
        registry.add_user("root", "admin")
        registry.add_skill("skl_a")

        cli("backfill-summaries", "--user", "root")

        out = _stdout_json(capsys)
        assert out["ok"] is True
        assert out["stats"]["skills_patched"] == 1
        with store.read() as session:
            assert session.get(Skill, "skl_a").summary == "Extract text and tables from PDF files."

    def test_backfill_fingerprints_dry_run(self, cli, capsys, store, registry):
        registry.add_user("root", "admin")
        registry.add_version("skv_a", [{"path": "SKILL.md", "sha256": "a"}])

        cli("backfill-fingerprints", "--user", "root", "--dry-run", "--batch-size", "10")

        assert _stdout_json(capsys)["stats"]["fingerprints_inserted"] == 1
        with store.read() as session:
            assert session.get(SkillVersion, "skv_a").fingerprint is None

    def test_non_admin_exits_2(self, cli, capsys, registry):
        registry.add_user("alice", "user")

        with pytest.raises(SystemExit) as exc_info:
            cli("backfill-fingerprints", "--user", "alice")

        assert exc_info.value.code == 2
        assert "Forbidden" in capsys.readouterr().err

    def test_unknown_user_exits_2(self, cli):
        with pytest.raises(SystemExit) as exc_info:
            cli("backfill-summaries", "--user", "ghost")
        assert exc_info.value.code == 2

    def test_incomplete_exits_1(self, cli, capsys, registry):
        registry.add_user("root", "admin")
        for i in range(3):
            registry.add_skill(f"skl_{i}", with_version=False)

        with pytest.raises(SystemExit) as exc_info:
            cli("backfill-summaries", "--user", "root", "--batch-size", "1", "--max-batches", "1")

        assert exc_info.value.code == 1
        assert "Backfill incomplete (maxBatches reached)" in capsys.readouterr().err

    def test_schedule_runs_in_background(self, cli, capsys, store, registry):
        registry.add_user("root", "admin")
        registry.add_version("skv_a", [{"path": "SKILL.md", "sha256": "a"}])

        cli("backfill-fingerprints", "--user", "root", "--schedule")

        assert _stdout_json(capsys) == {"ok": True}
        with store.read() as session:
            assert session.get(SkillVersion, "skv_a").fingerprint is not None

    def test_user_is_required(self, cli):
        with pytest.raises(SystemExit) as exc_info:
            cli("backfill-summaries")
        assert exc_info.value.code == 2
