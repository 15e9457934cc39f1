"""
Tests for the speechcache CLI.

Tests cover:
- segment command text and JSON output
- flush page / language / expired / all against a temp store
- reconcile with and without the orphan scan
- Settings errors reported as CONFIG_ERROR
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from speechcache import cli
from speechcache.core.config import Settings
from speechcache.store import UtteranceKey, UtteranceStore


def last_json(capsys):
    out = capsys.readouterr().out
    return json.loads(out.strip().splitlines()[-1])


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    """Write a settings file pointing at a temp store."""
    monkeypatch.delenv("SPEECHCACHE_DATABASE", raising=False)
    monkeypatch.delenv("SPEECHCACHE_BLOB_DIR", raising=False)
    path = tmp_path / "settings.yaml"
    path.write_text(
        "store:\n"
        f"  database_path: {tmp_path / 'u.sqlite3'}\n"
        f"  blob_base_dir: {tmp_path / 'blobs'}\n"
        "  utterance_ttl_days: 31\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def store(settings_file):
    from speechcache.core.config import load_settings

    return UtteranceStore.from_config(load_settings(str(settings_file)).get_service_config().store)


def put(store, page_id=1, language="en", voice="v1", hash_="h1"):
    return store.create(None, page_id, language, voice, hash_, b"audio", b"[]")


class TestSegmentCommand:
    """Tests for `speechcache segment`."""

    def test_segment_json(self, capsys):
        code = cli.main(["segment", "First sentence. Second one.", "--json"])

        assert code == 0
        payload = last_json(capsys)
        assert payload["ok"] is True
        assert [s["text"] for s in payload["segments"]] == ["First sentence.", "Second one."]
        assert payload["segments"][1]["start_offset"] == 16
        assert len(payload["segments"][0]["hash"]) == 64

    def test_global_json_flag(self, capsys):
        assert cli.main(["--json", "segment", "One."]) == 0
        assert last_json(capsys)["segments"][0]["text"] == "One."

    def test_segment_text_output(self, capsys):
        assert cli.main(["segment", "One. Two."]) == 0
        out = capsys.readouterr().out
        assert "segments:" in out
        assert "'text': 'Two.'" in out

    def test_segment_file_paragraphs(self, tmp_path, capsys):
        path = tmp_path / "page.txt"
        path.write_text("Heading\n\nFirst paragraph. Still first", encoding="utf-8")

        assert cli.main(["segment", "--file", str(path), "--json"]) == 0

        segments = last_json(capsys)["segments"]
        assert [s["text"] for s in segments] == ["Heading", "First paragraph.", "Still first"]
        assert segments[1]["content"][0]["origin_path"].endswith("#p1")

    def test_segment_without_input(self):
        with pytest.raises(SystemExit):
            cli.main(["segment"])


class TestFlushCommand:
    """Tests for `speechcache flush`."""

    def test_flush_page(self, store, settings_file, capsys):
        put(store, page_id=1)
        put(store, page_id=2)

        code = cli.main(["--settings", str(settings_file), "--json", "flush", "page", "1"])

        assert code == 0
        assert last_json(capsys) == {"ok": True, "criterion": "page", "flushed": 1}
        assert [r.page_id for r in store.metadata.select()] == [2]

    def test_flush_language_voice(self, store, settings_file, capsys):
        put(store, voice="v1")
        put(store, voice="v2")

        cli.main(["--settings", str(settings_file), "--json", "flush", "language", "en", "--voice", "v2"])

        assert last_json(capsys)["flushed"] == 1
        assert [r.voice for r in store.metadata.select()] == ["v1"]

    def test_flush_expired(self, store, settings_file, capsys):
        store.metadata.insert(
            UtteranceKey(None, 1, "en", "v1", "old"),
            stored_at=datetime.now(timezone.utc) - timedelta(days=40),
        )
        put(store, hash_="fresh")

        cli.main(["--settings", str(settings_file), "--json", "flush", "expired"])

        # The old row had no blobs, so it is removed but not counted
        assert last_json(capsys)["flushed"] == 0
        assert [r.segment_hash for r in store.metadata.select()] == ["fresh"]

    def test_flush_expired_days_override(self, store, settings_file, capsys):
        put(store)

        cli.main(["--settings", str(settings_file), "--json", "flush", "expired", "--days", "0"])

        assert last_json(capsys)["flushed"] == 1

    def test_flush_all(self, store, settings_file, capsys):
        for page_id in range(3):
            put(store, page_id=page_id)

        cli.main(["--settings", str(settings_file), "--json", "flush", "all"])

        assert last_json(capsys)["flushed"] == 3

    def test_missing_settings_file(self, tmp_path, capsys):
        code = cli.main(["--settings", str(tmp_path / "nope.yaml"), "--json", "flush", "all"])

        assert code == 2
        assert last_json(capsys)["error"] == "CONFIG_ERROR"

    def test_invalid_settings(self, tmp_path, capsys):
        path = tmp_path / "settings.yaml"
        path.write_text("store:\n  utterance_ttl_days: -1\n", encoding="utf-8")

        assert cli.main(["--settings", str(path), "--json", "flush", "all"]) == 2
        assert "utterance_ttl_days" in last_json(capsys)["message"]


class TestReconcileCommand:
    """Tests for `speechcache reconcile`."""

    def test_reconcile_clean_store(self, store, settings_file, capsys):
        put(store)

        code = cli.main(["--settings", str(settings_file), "--json", "reconcile"])

        assert code == 0
        assert last_json(capsys) == {"ok": True, "dangling_rows": 0, "orphan_blobs": 0, "failures": []}

    def test_reconcile_rows_only(self, store, settings_file, capsys):
        store.metadata.insert(
            UtteranceKey(None, 1, "en", "v1", "dangling"),
            stored_at=datetime.now(timezone.utc) - timedelta(days=1),
        )

        cli.main(["--settings", str(settings_file), "--json", "reconcile", "--rows-only"])

        assert last_json(capsys)["dangling_rows"] == 1
        assert store.metadata.select() == []


class TestSettingsFallback:
    """Without --settings a missing default file means built-in defaults."""

    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPEECHCACHE_SETTINGS", str(tmp_path / "absent.yaml"))
        monkeypatch.setenv("SPEECHCACHE_DATABASE", str(tmp_path / "env.sqlite3"))

        settings = cli._load_settings(None)

        assert isinstance(settings, Settings)
        assert settings.database_path == str(tmp_path / "env.sqlite3")
