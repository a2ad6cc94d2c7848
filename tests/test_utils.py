import subprocess

import pytest
from pytest_mock import MockerFixture

from certkeeper.types import BackupError, CertificateLoadError, ConfigurationError
from certkeeper.utils import handle_exception, run_hook


def test_handle_configuration_error(mocker: MockerFixture) -> None:
    mock_console = mocker.patch("certkeeper.utils.console_manager")

    handle_exception(
        ConfigurationError("domain: must not be empty"), exit_on_error=False
    )

    mock_console.print_error.assert_called_once_with("domain: must not be empty")
    assert "init-config" in mock_console.print_note.call_args.args[0]


def test_handle_certificate_load_error(mocker: MockerFixture) -> None:
    mock_console = mocker.patch("certkeeper.utils.console_manager")

    handle_exception(CertificateLoadError("bad pem"), exit_on_error=False)

    mock_console.print_error.assert_called_once_with("bad pem")
    mock_console.print_note.assert_called_once()


def test_handle_called_process_error_with_output(mocker: MockerFixture) -> None:
    mock_console = mocker.patch("certkeeper.utils.console_manager")
    error = subprocess.CalledProcessError(1, ["nginx"], output="nginx: bad config\n")

    handle_exception(error, exit_on_error=False)

    mock_console.error_console.print.assert_called_once_with(
        "nginx: bad config\n", end="", markup=False
    )
    mock_console.print_error.assert_not_called()


def test_handle_called_process_error_without_output(mocker: MockerFixture) -> None:
    mock_console = mocker.patch("certkeeper.utils.console_manager")

    handle_exception(subprocess.CalledProcessError(3, ["nginx"]), exit_on_error=False)

    mock_console.print_error.assert_called_once_with("Command failed with exit code 3")


def test_handle_exception_exits(mocker: MockerFixture) -> None:
    mocker.patch("certkeeper.utils.console_manager")

    with pytest.raises(SystemExit) as exc_info:
        handle_exception(BackupError("disk full"))

    assert exc_info.value.code == 1


def test_run_hook_splits_command(mocker: MockerFixture) -> None:
    mock_run = mocker.patch("certkeeper.utils.subprocess.run")

    run_hook("systemctl reload 'my nginx'")

    assert mock_run.call_args.args[0] == ["systemctl", "reload", "my nginx"]
    assert mock_run.call_args.kwargs["check"] is True


def test_run_hook_propagates_failure(mocker: MockerFixture) -> None:
    mocker.patch(
        "certkeeper.utils.subprocess.run",
        side_effect=subprocess.CalledProcessError(1, ["false"]),
    )

    with pytest.raises(subprocess.CalledProcessError):
        run_hook("false")
