"""
Tests for ColorLogger level filtering, stream routing and file output.
"""

import logging
import threading

import pytest

from exec_logger import ColorLogger, clear_logger, get_logger, strip_ansi


@pytest.fixture
def registry_name():
    name = "logger-test"
    clear_logger(name)
    yield name
    clear_logger(name)


def test_strip_ansi():
    assert strip_ansi("\033[1m\033[92mok\033[0m") == "ok"


def test_info_hides_debug(capsys):
    log = ColorLogger(name="quiet", level=logging.INFO)
    log.debug("Created mount /tmp/x/mount/d0000")
    log.info("visible")
    out = capsys.readouterr().out
    assert "Created mount" not in out
    assert "visible" in out


def test_custom_levels_respect_threshold(capsys):
    log = ColorLogger(name="strict", level=logging.WARNING)
    log.step("step")
    log.success("done")
    log.warning("careful")
    out = capsys.readouterr().out
    assert "step" not in out
    assert "done" not in out
    assert "careful" in out


def test_errors_go_to_stderr(capsys):
    log = ColorLogger(name="errs")
    log.error("broken")
    captured = capsys.readouterr()
    assert "broken" in captured.err
    assert "broken" not in captured.out


def test_verbose_registry_logger(registry_name, capsys):
    log = get_logger(registry_name, verbose=True)
    assert log.level == logging.DEBUG
    assert get_logger(registry_name, verbose=False) is log

    log.debug("mounter 3 cmd")
    assert "mounter 3 cmd" in capsys.readouterr().out


def test_file_output_is_plain(tmp_path):
    log = ColorLogger(name="filelog", log_dir=tmp_path, console=False)
    log.success("✓ Mounts check out")
    log.header("paramount")
    log.close()

    text = log.log_file_path.read_text(encoding="utf-8")
    assert "✓ Mounts check out" in text
    assert "SUCCESS" in text
    assert "\033[" not in text


def test_exception_traceback_is_logged(tmp_path):
    log = ColorLogger(name="tb", log_dir=tmp_path, console=False)
    try:
        raise RuntimeError("kaboom")
    except RuntimeError:
        log.critical("Caught exception", exc_info=True)
    log.close()

    text = log.log_file_path.read_text(encoding="utf-8")
    assert "Traceback" in text
    assert "kaboom" in text


def test_concurrent_lines_do_not_interleave(capsys):
    log = ColorLogger(name="threads", level=logging.DEBUG, datetime_fmt="%H")

    def worker(n):
        for i in range(20):
            log.debug(f"mounter {n} line {i}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    lines = [strip_ansi(line) for line in capsys.readouterr().out.splitlines()]
    assert len(lines) == 160
    assert all(line.count("mounter") == 1 for line in lines)
