"""Tests for the ringsim command line."""

from __future__ import annotations

import json
import logging

import pytest

from ringsim.cli.main import SETTING_FLAGS, app, build_settings, main

BASE = ["--size", "6", "--seed", "3", "--evaluation", "--quiet", "--log-level", "WARNING"]


@pytest.fixture(autouse=True)
def restore_root_logger(clean_env):
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def run(capsys, *argv: str) -> tuple[int, dict | None, str]:
    code = main([*BASE, *argv])
    captured = capsys.readouterr()
    data = json.loads(captured.out) if captured.out.strip() else None
    return code, data, captured.err


# ============================================================================
# Argument handling
# ============================================================================


class TestArguments:
    """Test flag parsing and settings construction."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            app().parse_args(["--size", "4"])

    def test_only_given_flags_forwarded(self):
        args = app().parse_args(["--size", "12", "--nc", "complete"])
        settings = build_settings(args)
        assert settings.size == 12
        assert settings.nc_enable
        assert not settings.secure_edges
        assert settings.default_latency_ms == 10

    def test_flags_map_to_settings_fields(self):
        settings = build_settings(app().parse_args(["complete"]))
        for field in SETTING_FLAGS.values():
            assert field in type(settings).model_fields

    def test_broadcast_options(self):
        args = app().parse_args(["broadcast", "-f", "2", "-r", "1"])
        assert (args.forwarders, args.root) == (2, 1)

    def test_kv_defaults(self):
        args = app().parse_args(["kv"])
        assert (args.key, args.value, args.ttl) == ("ringsim", "hello", 60)


# ============================================================================
# Commands
# ============================================================================


class TestCommands:
    """Test each command end to end."""

    def test_complete(self, capsys):
        code, data, _ = run(capsys, "complete")
        assert code == 0
        assert data["complete"] is True
        assert data["nodes"] == 6
        assert data["seed"] == 3
        assert data["simulated_ms"] >= 0

    def test_crawl(self, capsys):
        code, data, _ = run(capsys, "crawl")
        assert code == 0
        assert data["visited"] == data["expected"] == 6
        assert data["success"] is True

    def test_broadcast(self, capsys):
        code, data, _ = run(capsys, "broadcast", "-f", "-1", "-r", "0")
        assert code == 0
        assert data["hit"] == 5
        assert data["forwarders"] == -1

    def test_all_to_all(self, capsys):
        code, data, _ = run(capsys, "all-to-all")
        assert code == 0
        assert data["issued"] == 30
        assert data["contributing"] == 30
        assert data["nodes"] == 6

    def test_kv(self, capsys):
        code, data, _ = run(capsys, "kv", "--key", "k", "--value", "v")
        assert code == 0
        assert data == {"put": True, "get": ["v"]}

    def test_revoke(self, capsys):
        code = main(["--secure-senders", *BASE, "revoke"])
        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["nodes"] == 6
        assert data["aware"] >= 5
        assert data["revoked"].startswith("brunet:node:")


# ============================================================================
# Errors
# ============================================================================


class TestErrors:
    """Test exit codes for bad input."""

    def test_invalid_settings(self, capsys):
        code = main(["--broken", "2", "complete"])
        err = capsys.readouterr().err
        assert code == 2
        assert "invalid settings" in err

    def test_broadcast_root_out_of_range(self, capsys):
        code, data, err = run(capsys, "broadcast", "-r", "99")
        assert code == 1
        assert data is None
        assert "outside 0..5" in err

    def test_revoke_without_security(self, capsys):
        code, data, err = run(capsys, "revoke")
        assert code == 1
        assert data is None
        assert "revocation needs" in err
