"""
Tests for CLI module.
"""

import pytest

from plasmaeq.cli.main import check_matrix_cmd, main, show_config_cmd


def test_main_no_command(capsys):
    """Without a command, help is printed and the exit code is 1."""
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 1

    captured = capsys.readouterr()
    assert "check-matrix" in captured.out
    assert "show-config" in captured.out


def test_main_version(capsys):
    """Test version flag."""
    with pytest.raises(SystemExit):
        main(["--version"])

    captured = capsys.readouterr()
    assert "0.1.0" in captured.out


def test_backends(capsys):
    """Both backends are listed."""
    main(["backends", "--platform", "cpu"])
    out = capsys.readouterr().out
    assert "cpu" in out
    assert "gpu" in out


def test_check_matrix_cpu(capsys):
    """The CPU self-check passes."""
    main(["check-matrix", "--size", "20", "--seed", "3"])
    out = capsys.readouterr().out
    assert "Backend:        cpu" in out
    assert "System size:    20" in out


def test_check_matrix_unavailable_accelerator(capsys):
    """A backend that cannot start exits with status 1."""
    with pytest.raises(SystemExit) as excinfo:
        main(["check-matrix", "--backend", "gpu", "--platform", "no-such-platform"])
    assert excinfo.value.code == 1
    assert "ERROR" in capsys.readouterr().out


def test_check_matrix_tolerance(capsys):
    """An impossible tolerance fails the check."""

    class Args:
        backend = "cpu"
        platform = "gpu"
        size = 10
        seed = 1
        tolerance = 0.0

    with pytest.raises(SystemExit):
        check_matrix_cmd(Args())


def test_show_config(temp_config_file, capsys):
    """A valid configuration is printed."""
    main(["show-config", temp_config_file])
    out = capsys.readouterr().out
    assert "is valid" in out
    assert "partial_cells" in out


def test_show_config_missing_file():
    """Missing files raise from the command."""

    class Args:
        config = "nonexistent.yaml"

    with pytest.raises(FileNotFoundError):
        show_config_cmd(Args())


def test_main_reports_errors_with_exit_code():
    """Errors inside a command become exit status 1."""
    with pytest.raises(SystemExit) as excinfo:
        main(["show-config", "nonexistent.yaml"])
    assert excinfo.value.code == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
