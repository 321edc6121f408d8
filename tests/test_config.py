"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from rankedle.config import load_config

EXAMPLE = Path(__file__).resolve().parent.parent / "config.yaml.example"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_example_file_loads(self):
        cfg = load_config(EXAMPLE)
        assert cfg.community_name == "BSFR"
        assert cfg.results_channel_id == 345678901234567890
        assert cfg.tz == ZoneInfo("Europe/Paris")
        assert cfg.banned_member_ids == frozenset()

    def test_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "community_name: X\nguild_id: 10\nadmin_role_id: 20\n"))
        assert cfg.everyone_role_id == 10
        assert cfg.results_channel_id is None
        assert cfg.assets_dir == "rankedle"
        assert cfg.share_url == "https://bsaber.fr/rankedle"
        assert cfg.ffmpeg_path == "ffmpeg"
        assert not hasattr(cfg, "api_port")

    def test_rankedle_section(self, tmp_path):
        cfg = load_config(_write(tmp_path, (
            "community_name: X\n"
            "guild_id: 10\n"
            "admin_role_id: 20\n"
            "rankedle:\n"
            "  assets_dir: /srv/rankedle\n"
            "  timezone: UTC\n"
            "  banned_member_ids: [666, '777']\n"
        )))
        assert cfg.assets_dir == "/srv/rankedle"
        assert cfg.timezone == "UTC"
        assert cfg.is_banned(666)
        assert cfg.is_banned(777)
        assert not cfg.is_banned(1)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "community_name: X\nguild_id: 10\n"))
