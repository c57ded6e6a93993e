"""Unit tests for photoframe.utils.logging."""

import argparse
import io
import logging
import os
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from photoframe.config.settings import PhotoFrameSettings
from photoframe.utils.logging import (
    VERBOSE,
    ColoredFormatter,
    RunLogFileHandler,
    apply_command_line_overrides,
    get_log_level,
    get_logger,
    setup_logging,
    supports_color,
)


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> PhotoFrameSettings:
    for key in list(os.environ):
        if key.upper().startswith("PHOTOFRAME_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return PhotoFrameSettings(config_dir=tmp_path / "config", data_dir=tmp_path / "data")


class ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(logging.NOTSET)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def capturing_logger(name: str, level: int) -> tuple[logging.Logger, list[logging.LogRecord]]:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    handler = ListHandler()
    logger.addHandler(handler)
    return logger, handler.records


class TestVerboseLevel:
    """Test the custom VERBOSE level."""

    def test_verbose_level_when_registered_then_named_verbose(self) -> None:
        assert VERBOSE == 15
        assert logging.getLevelName(VERBOSE) == "VERBOSE"

    def test_get_log_level_when_name_given_then_numeric_level_returned(self) -> None:
        assert get_log_level("verbose") == VERBOSE
        assert get_log_level("INFO") == logging.INFO
        assert get_log_level("debug") == logging.DEBUG

    def test_get_log_level_when_name_unknown_then_raises_attribute_error(self) -> None:
        with pytest.raises(AttributeError):
            get_log_level("LOUD")

    def test_verbose_when_level_enabled_then_record_emitted(self) -> None:
        logger, records = capturing_logger("photoframe.tests.verbose", VERBOSE)

        logger.verbose("selected %s", "l1")  # type: ignore[attr-defined]

        assert [r.levelname for r in records] == ["VERBOSE"]
        assert records[0].getMessage() == "selected l1"

    def test_verbose_when_level_disabled_then_nothing_emitted(self) -> None:
        logger, records = capturing_logger("photoframe.tests.quiet", logging.INFO)

        logger.verbose("hidden")  # type: ignore[attr-defined]

        assert records == []


class TestGetLogger:
    """Test logger namespacing."""

    def test_get_logger_when_inside_namespace_then_name_kept(self) -> None:
        assert get_logger("photoframe.service").name == "photoframe.service"

    def test_get_logger_when_outside_namespace_then_prefixed(self) -> None:
        assert get_logger("scripts.tool").name == "photoframe.scripts.tool"


class TestColoredFormatter:
    """Test level colouring."""

    def test_format_when_colors_disabled_then_plain_text(self) -> None:
        formatter = ColoredFormatter("%(levelname)s %(message)s", use_colors=False)
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)

        assert formatter.format(record) == "ERROR boom"

    def test_format_when_colors_enabled_then_level_name_wrapped(self) -> None:
        formatter = ColoredFormatter("%(levelname)s %(message)s")
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)

        assert formatter.format(record) == "\033[31mERROR\033[0m boom"

    def test_format_when_verbose_record_then_green(self) -> None:
        formatter = ColoredFormatter("%(levelname)s")
        record = logging.LogRecord("x", VERBOSE, __file__, 1, "detail", None, None)

        assert formatter.format(record) == "\033[32mVERBOSE\033[0m"

    def test_supports_color_when_stream_not_a_terminal_then_false(self) -> None:
        assert supports_color(io.StringIO()) is False

    def test_supports_color_when_terminal_then_depends_on_term(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        tty = Mock()
        tty.isatty.return_value = True
        monkeypatch.delenv("NO_COLOR", raising=False)

        monkeypatch.setenv("TERM", "xterm-256color")
        assert supports_color(tty) is True
        monkeypatch.setenv("TERM", "dumb")
        assert supports_color(tty) is False
        monkeypatch.setenv("TERM", "xterm")
        monkeypatch.setenv("NO_COLOR", "1")
        assert supports_color(tty) is False


class TestRunLogFileHandler:
    """Test per-run log files."""

    def test_init_when_created_then_file_lives_in_log_dir(self, tmp_path: Path) -> None:
        handler = RunLogFileHandler(tmp_path / "logs", prefix="run")
        try:
            path = Path(handler.baseFilename)
            assert path.parent == tmp_path / "logs"
            assert path.name.startswith("run_")
            assert path.suffix == ".log"
        finally:
            handler.close()

    def test_prune_when_over_limit_then_newest_runs_kept(self, tmp_path: Path) -> None:
        for day in range(4):
            (tmp_path / f"run_2020010{day + 1}_000000.log").write_text("old", encoding="utf-8")
        (tmp_path / "other_20200101_000000.log").write_text("other", encoding="utf-8")

        handler = RunLogFileHandler(tmp_path, prefix="run", keep=2)
        try:
            remaining = [p.name for p in handler.run_files()]
            assert remaining == [Path(handler.baseFilename).name, "run_20200104_000000.log"]
            assert (tmp_path / "other_20200101_000000.log").exists()
        finally:
            handler.close()

    def test_prune_when_file_cannot_be_removed_then_it_is_kept(
        self, tmp_path: Path
    ) -> None:
        (tmp_path / "run_20200101_000000.log").write_text("old", encoding="utf-8")
        handler = RunLogFileHandler(tmp_path, prefix="run", keep=5)
        handler.keep = 1
        try:
            with patch.object(Path, "unlink", side_effect=PermissionError("read-only")):
                removed = handler.prune()

            assert removed == []
            assert (tmp_path / "run_20200101_000000.log").exists()
        finally:
            handler.close()


class TestSetupLogging:
    """Test package logger configuration."""

    def test_setup_logging_when_defaults_then_single_console_handler(
        self, settings: PhotoFrameSettings
    ) -> None:
        logger = setup_logging(settings)

        assert logger.name == "photoframe"
        assert logger.propagate is False
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.INFO

    def test_setup_logging_when_called_twice_then_handlers_not_duplicated(
        self, settings: PhotoFrameSettings
    ) -> None:
        setup_logging(settings)
        logger = setup_logging(settings)

        assert len(logger.handlers) == 1

    def test_setup_logging_when_file_enabled_then_records_written(
        self, settings: PhotoFrameSettings, tmp_path: Path
    ) -> None:
        settings.logging.file_enabled = True
        settings.logging.file_directory = str(tmp_path / "logs")

        logger = setup_logging(settings)
        get_logger("photoframe.tests").warning("written to file")
        for handler in logger.handlers:
            handler.flush()

        log_files = list((tmp_path / "logs").glob("photoframe_*.log"))
        assert len(log_files) == 1
        assert "written to file" in log_files[0].read_text(encoding="utf-8")

    def test_setup_logging_when_file_directory_unset_then_data_dir_used(
        self, settings: PhotoFrameSettings, tmp_path: Path
    ) -> None:
        settings.logging.file_enabled = True

        setup_logging(settings)

        assert list((tmp_path / "data" / "logs").glob("photoframe_*.log"))

    def test_setup_logging_when_called_then_third_party_levels_applied(
        self, settings: PhotoFrameSettings
    ) -> None:
        settings.logging.third_party_level = "ERROR"

        setup_logging(settings)

        assert logging.getLogger("PIL").level == logging.ERROR


class TestCommandLineOverrides:
    """Test command-line logging overrides."""

    def test_apply_when_verbose_then_verbose_levels(self, settings: PhotoFrameSettings) -> None:
        args = argparse.Namespace(log_level=None, verbose=True, quiet=False)

        apply_command_line_overrides(settings, args)

        assert settings.logging.console_level == "VERBOSE"
        assert settings.logging.file_level == "VERBOSE"

    def test_apply_when_quiet_then_console_errors_only(self, settings: PhotoFrameSettings) -> None:
        apply_command_line_overrides(settings, argparse.Namespace(quiet=True))

        assert settings.logging.console_level == "ERROR"
        assert settings.logging.file_level == "DEBUG"

    def test_apply_when_log_level_given_then_both_levels_set(
        self, settings: PhotoFrameSettings
    ) -> None:
        apply_command_line_overrides(settings, argparse.Namespace(log_level="WARNING"))

        assert settings.logging.console_level == "WARNING"
        assert settings.logging.file_level == "WARNING"

    def test_apply_when_log_dir_given_then_file_logging_enabled(
        self, settings: PhotoFrameSettings, tmp_path: Path
    ) -> None:
        args = argparse.Namespace(log_dir=tmp_path / "cli-logs", no_log_colors=True)

        apply_command_line_overrides(settings, args)

        assert settings.logging.file_enabled is True
        assert settings.logging.file_directory == tmp_path / "cli-logs"
        assert settings.logging.console_colors is False

    def test_apply_when_no_flags_then_settings_unchanged(
        self, settings: PhotoFrameSettings
    ) -> None:
        before = settings.logging.model_dump()

        apply_command_line_overrides(settings, argparse.Namespace())

        assert settings.logging.model_dump() == before
