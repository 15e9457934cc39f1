"""Tests for package metadata and entry points."""
from __future__ import annotations

import pytest


class TestPackage:
    """Test that the package is properly laid out."""

    def test_version_defined(self):
        import speechcache

        assert isinstance(speechcache.__version__, str)
        assert len(speechcache.__version__) > 0

    def test_modules_importable(self):
        from speechcache import cli
        from speechcache.core import config, logging
        from speechcache.services import utterance_service
        from speechcache.store import flush, utterance_store
        from speechcache.synthesis import contract, metadata
        from speechcache.text import segmenter

        for module in (cli, config, logging, utterance_service, flush, utterance_store,
                       contract, metadata, segmenter):
            assert module is not None


class TestCLIEntryPoint:
    """Test the CLI entry point."""

    def test_cli_help_exits_zero(self, capsys):
        from speechcache import cli

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--help"])

        assert exc_info.value.code == 0
        assert "speechcache" in capsys.readouterr().out


class TestStoreSurface:
    """The store module's flush delegates are fully typed."""

    def test_store_uses_flush_module_flusher(self):
        from speechcache.store import flush, utterance_store

        assert utterance_store.UtteranceFlusher is flush.UtteranceFlusher

    def test_delegate_type_hints_resolve(self):
        import typing
        from datetime import datetime

        from speechcache.store import UtteranceFlusher, UtteranceStore

        assert typing.get_type_hints(UtteranceStore.flusher)["return"] is UtteranceFlusher
        hints = typing.get_type_hints(UtteranceStore.flush_by_expiration_date)
        assert hints["cutoff"] is datetime
        assert hints["return"] is int
