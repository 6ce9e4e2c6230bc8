"""Tests for settings and logging setup."""

import logging

import pytest

from garch.config import DEFAULT_JOBS, SYNTAX_THEME, Settings, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings == Settings()
        assert settings.jobs == DEFAULT_JOBS
        assert settings.theme == SYNTAX_THEME
        assert settings.log_file is None

    def test_environment(self):
        settings = Settings.from_env(
            {"GARCH_GIT": "/usr/local/bin/git", "GARCH_JOBS": "8", "GARCH_LOG_FILE": "/tmp/garch.log"}
        )
        assert settings.git == "/usr/local/bin/git"
        assert settings.jobs == 8
        assert settings.log_file == "/tmp/garch.log"

    def test_jobs_below_one_is_raised_to_one(self):
        assert Settings.from_env({"GARCH_JOBS": "0"}).jobs == 1

    def test_invalid_jobs_falls_back_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="garch.config"):
            settings = Settings.from_env({"GARCH_JOBS": "many"})
        assert settings.jobs == DEFAULT_JOBS
        assert "GARCH_JOBS" in caplog.text

    def test_merged_skips_unset_overrides(self):
        base = Settings(git="/opt/git", jobs=4)
        merged = base.merged(jobs=None, git="git", log_file=None)
        assert merged == Settings(git="git", jobs=4)
        assert base.git == "/opt/git"


class TestLogging:
    def test_log_file_receives_debug_messages(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "garch.log"
        setup_logging(str(log_file))
        logging.getLogger("garch.history").debug("assembling a.txt")

        line = log_file.read_text(encoding="utf-8").strip()
        assert line.endswith(" - garch.history - DEBUG - assembling a.txt")

    def test_without_log_file_nothing_is_printed(self, capsys, restore_root_logger):
        setup_logging(None)
        logging.getLogger("garch.history").warning("skipping commit 1111111")
        assert isinstance(restore_root_logger.handlers[0], logging.NullHandler)
        captured = capsys.readouterr()
        assert captured.err == "" and captured.out == ""
