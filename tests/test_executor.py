"""Tests for package manager execution."""

from unittest.mock import MagicMock, patch

import pytest

from common.errors import ExecutorError
from executor import CommandExecutor, shell_exit_code


@pytest.mark.parametrize("rc,expected", [(0, 0), (1, 1), (-9, 137), (-2, 130)])
def test_shell_exit_code(rc, expected):
    assert shell_exit_code(rc) == expected


@patch('executor.subprocess.run')
@patch('executor.shutil.which', return_value="/usr/bin/npm")
def test_runs_resolved_binary_with_original_args(mock_which, mock_run):
    mock_run.return_value = MagicMock(returncode=0)

    assert CommandExecutor(env={"EXTRA": "1"}).run(["npm", "install", "lodash"]) == 0

    mock_which.assert_called_once_with("npm")
    args, kwargs = mock_run.call_args
    assert args[0] == ["/usr/bin/npm", "install", "lodash"]
    assert kwargs["env"]["EXTRA"] == "1"


@patch('executor.shutil.which', return_value=None)
def test_missing_binary(mock_which):
    with pytest.raises(ExecutorError) as excinfo:
        CommandExecutor().run(["pnpm", "add", "x"])
    assert excinfo.value.returncode == 127


@patch('executor.subprocess.run')
@patch('executor.shutil.which', return_value="/usr/bin/npm")
def test_non_zero_exit_raises(mock_which, mock_run):
    mock_run.return_value = MagicMock(returncode=1)
    with pytest.raises(ExecutorError, match="status 1") as excinfo:
        CommandExecutor().run(["npm", "install", "x"])
    assert excinfo.value.returncode == 1


@patch('executor.subprocess.run', side_effect=PermissionError("denied"))
@patch('executor.shutil.which', return_value="/usr/bin/npm")
def test_spawn_failure(mock_which, mock_run):
    with pytest.raises(ExecutorError) as excinfo:
        CommandExecutor().run(["npm", "install", "x"])
    assert excinfo.value.returncode == 126


def test_empty_argv():
    with pytest.raises(ExecutorError):
        CommandExecutor().run([])
