"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import textwrap

import pytest

from solvebot.config import RankConfig, load_config

VALID = textwrap.dedent("""
    server:
      guild_id: 1
      solve_approvals_channel_id: 2
      rank_up_channel_id: 3
      officer_role: officer
      member_role: member
    ranks:
      points_per_solve: 100
      rank_names: [a, b, c]
""")


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_loads_with_defaults(tmp_path):
    cfg = load_config(_write(tmp_path, VALID))
    assert cfg.server.guild_id == 1
    assert cfg.server.bot_log_channel_id is None
    assert cfg.ranks.rank_names == ("a", "b", "c")
    assert cfg.ranks.rank_count == 3
    assert cfg.ranks.points_per_message == 0
    assert cfg.ranks.cutoff_decay == 0.75
    assert cfg.bot_prefix == "!"


def test_optional_values(tmp_path):
    body = VALID.replace("member_role: member", "member_role: member\n  bot_log_channel_id: 44")
    body += "  cutoff_decay: 0.5\n  points_per_message: 2\n"
    cfg = load_config(_write(tmp_path, body))
    assert cfg.server.bot_log_channel_id == 44
    assert cfg.ranks.cutoff_decay == 0.5
    assert cfg.ranks.points_per_message == 2


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="config.yaml.example"):
        load_config(tmp_path / "nope.yaml")


def test_missing_key(tmp_path):
    with pytest.raises(KeyError):
        load_config(_write(tmp_path, VALID.replace("points_per_solve: 100", "")))


def test_example_file_parses():
    from pathlib import Path

    example = Path(__file__).resolve().parent.parent / "config.yaml.example"
    cfg = load_config(example)
    assert cfg.ranks.rank_names[-1] == "elite"


class TestRankConfig:
    def test_empty_ladder_rejected(self):
        with pytest.raises(ValueError):
            RankConfig(points_per_solve=1, points_per_message=0, rank_names=())

    @pytest.mark.parametrize("decay", [0, 1, 1.5, -0.1])
    def test_decay_out_of_range(self, decay):
        with pytest.raises(ValueError):
            RankConfig(
                points_per_solve=1, points_per_message=0, rank_names=("a",), cutoff_decay=decay
            )
