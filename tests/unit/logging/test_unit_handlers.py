# tests/unit/logging/test_unit_handlers.py — v2
"""Tests for logging/handlers.py — size parsing and the rotating handler."""

from __future__ import annotations

import pytest

from conveyor.logging.handlers import create_rotating_handler, parse_size


class TestParseSize:
    def test_mb(self):
        assert parse_size("10MB") == 10 * 1024 * 1024

    def test_kb_case_insensitive(self):
        assert parse_size("512kb") == 512 * 1024

    def test_plain_bytes(self):
        assert parse_size("2048") == 2048
        assert parse_size(4096) == 4096

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid size"):
            parse_size("10bytes")


class TestCreateRotatingHandler:
    def test_creates_handler(self, tmp_path):
        handler = create_rotating_handler(tmp_path / "conveyor.log", rotation="1MB", retention=5)
        try:
            assert handler.maxBytes == 1024 * 1024
            assert handler.backupCount == 5
        finally:
            handler.close()

    def test_creates_parent_dirs(self, tmp_path):
        handler = create_rotating_handler(tmp_path / "deep" / "dir" / "conveyor.log")
        try:
            assert (tmp_path / "deep" / "dir").is_dir()
        finally:
            handler.close()
