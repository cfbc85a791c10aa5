"""Tests for CLI module."""

from pathlib import Path

import pytest


class TestParseArgs:
    """Tests for argument parsing."""

    def test_no_args_gives_defaults(self, clean_env):
        from watchcode.cli import parse_args
        from watchcode.config import Config

        cfg, ns = parse_args([])

        assert cfg == Config()
        assert ns.show_config is False

    def test_overrides(self, clean_env):
        from watchcode.cli import parse_args

        cfg, _ns = parse_args(
            [
                "--watch-dir", "/srv/in",
                "--accel", "cpu",
                "--codec", "libsvtav1",
                "--keep-source",
                "--codec-skip",
                "--clean-depth", "2",
                "--interval", "0.5",
                "--no-progress",
            ]
        )

        assert cfg.watch_dir == Path("/srv/in")
        assert cfg.accel == "cpu"
        assert cfg.codec == "libsvtav1"
        assert cfg.delete_source is False
        assert cfg.codec_skip is True
        assert cfg.clean_depth == 2
        assert cfg.queue_interval == 0.5
        assert cfg.show_progress is False

    def test_unset_flags_leave_environment_in_place(self, clean_env, monkeypatch):
        from watchcode.cli import parse_args

        monkeypatch.setenv("DELETE_MISC_FILES", "false")
        monkeypatch.setenv("VIDEO_CODEC", "hevc")

        cfg, _ns = parse_args(["--codec", "av1"])

        assert cfg.delete_misc is False
        assert cfg.codec == "av1"

    def test_debug_sets_log_level(self, clean_env):
        from watchcode.cli import parse_args

        cfg, _ns = parse_args(["--debug"])
        assert cfg.log_level == "DEBUG"

    def test_version(self, capsys):
        from watchcode import __version__
        from watchcode.cli import parse_args

        with pytest.raises(SystemExit) as exc:
            parse_args(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestMain:
    """Tests for the main entry point."""

    def test_show_config(self, clean_env, capsys):
        from watchcode.cli import main

        assert main(["--show-config", "--accel", "software", "--watch-dir", "/srv/in"]) == 0

        out = capsys.readouterr().out
        assert "watch_dir = /srv/in" in out
        assert "backend = cpu" in out

    def test_bad_configuration_exits_2(self, clean_env, monkeypatch, capsys):
        from watchcode.cli import main

        monkeypatch.setenv("FOLDER_CLEAN_DEPTH", "shallow")

        assert main(["--show-config"]) == 2
        assert "watchcode: error:" in capsys.readouterr().err

    def test_clean_removes_empty_directories(self, clean_env, media_cfg, capsys):
        from watchcode.cli import main

        (media_cfg.watch_dir / "show" / "season1").mkdir(parents=True)
        (media_cfg.temp_dir / "old").mkdir()

        rc = main(
            [
                "--clean",
                "--watch-dir", str(media_cfg.watch_dir),
                "--temp-dir", str(media_cfg.temp_dir),
                "--complete-dir", str(media_cfg.complete_dir),
            ]
        )

        assert rc == 0
        assert not (media_cfg.watch_dir / "show").exists()
        assert not (media_cfg.temp_dir / "old").exists()
        assert media_cfg.watch_dir.is_dir()
        assert "Removed empty directory" in capsys.readouterr().out

    def test_init_config(self, clean_env, temp_dir, monkeypatch, capsys):
        from watchcode.cli import main

        user_dir = temp_dir / "xdg" / "watchcode"
        monkeypatch.setattr("watchcode.cli.get_config_dirs", lambda: {"user": user_dir})

        assert main(["--init-config"]) == 0
        assert (user_dir / "config.toml").exists()
        assert str(user_dir / "config.toml") in capsys.readouterr().out

    def test_check_requirements_reports_missing_tools(self, clean_env, monkeypatch, capsys):
        from watchcode import cli

        monkeypatch.setattr(cli.shutil, "which", lambda name: None)
        monkeypatch.setattr(cli, "have_encoder", lambda name: False)

        assert cli.main(["--check-requirements", "--accel", "cpu"]) == 1
        out = capsys.readouterr().out
        assert "ffmpeg: NOT FOUND" in out
        assert "encoder av1: not available" in out
