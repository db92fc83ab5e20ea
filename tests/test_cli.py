"""Tests for the probekit command-line interface."""

import logging

import pytest

from probekit.cli import main

SOURCE = 'def place(order_id):\n    # #probe("placed", order_id)\n    return order_id\n'


@pytest.fixture(autouse=True)
def _restore_probekit_logger():
    logger = logging.getLogger("probekit")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


def test_rewrite_prints_transformed_source(tmp_path, capsys):
    path = tmp_path / "orders.py"
    path.write_text(SOURCE)

    assert main(["rewrite", str(path)]) == 0

    out = capsys.readouterr().out
    assert out.startswith("from probekit import probe_emit as __PROBE__\n")
    assert '    __PROBE__("placed", order_id)\n' in out
    assert path.read_text() == SOURCE


def test_rewrite_without_directives_echoes_source(tmp_path, capsys):
    path = tmp_path / "plain.py"
    path.write_text("x = 1\n")
    assert main(["rewrite", str(path)]) == 0
    assert capsys.readouterr().out == "x = 1\n"


def test_rewrite_custom_identifier(tmp_path, capsys):
    path = tmp_path / "script"
    path.write_text(SOURCE)
    assert main(["rewrite", str(path), "--ident", "emit"]) == 0
    assert '    emit("placed", order_id)\n' in capsys.readouterr().out


def test_check_exit_codes(tmp_path):
    with_directive = tmp_path / "a.py"
    with_directive.write_text(SOURCE)
    without = tmp_path / "b.py"
    without.write_text("x = 1\n")

    assert main(["rewrite", str(with_directive), "--check"]) == 1
    assert main(["rewrite", str(without), "--check"]) == 0


def test_missing_file(tmp_path, capsys):
    assert main(["rewrite", str(tmp_path / "missing.py")]) == 2
    assert "is not a file" in capsys.readouterr().err
