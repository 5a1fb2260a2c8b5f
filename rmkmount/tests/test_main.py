from unittest import mock
import logging
import signal

import pytest

import rmkmount.constants as constants
from rmkmount.__main__ import main
from rmkmount.logger import log


def test_no_args():
    with pytest.raises(SystemExit):
        main([])


def test_debug_flag_set():
    with mock.patch("rmkmount.operations.MountOperations"):
        with pytest.raises(SystemExit):
            main(["--debug", "mount", "/mnt/tablet"])

        assert log.getEffectiveLevel() == logging.DEBUG


def test_verbose_flag_set():
    with mock.patch("rmkmount.operations.MountOperations"):
        with pytest.raises(SystemExit):
            main(["--verbose", "mount", "/mnt/tablet"])

        assert log.getEffectiveLevel() == logging.INFO


def test_debug_flag_not_set():
    with mock.patch("rmkmount.operations.MountOperations"):
        with pytest.raises(SystemExit):
            main(["mount", "/mnt/tablet"])

        assert log.getEffectiveLevel() == logging.ERROR


def test_mount_operations(tmp_path):
    (tmp_path / "config").write_text("[device]\nhost = tablet.local\n")

    with mock.patch("rmkmount.operations.MountOperations") as mock_operations:
        mock_operations.return_value.run.return_value = 0

        with pytest.raises(SystemExit) as e:
            main([f"--config={tmp_path / 'config'}", "mount", "/mnt/tablet"])

        assert e.value.code == 0
        assert mock_operations.return_value.run.called

        args, config = mock_operations.call_args[0]
        assert args.mountpoint == "/mnt/tablet"
        assert config.device.host == "tablet.local"


def test_umount_operations():
    with mock.patch("rmkmount.operations.UnmountOperations") as mock_operations:
        with pytest.raises(SystemExit):
            main(["umount", "/mnt/tablet"])

        assert mock_operations().run.called


def test_command_failure(caplog):
    with mock.patch("rmkmount.operations.MountOperations") as mock_operations:
        mock_operations().run.side_effect = Exception("foo")

        with pytest.raises(SystemExit) as e:
            main(["mount", "/mnt/tablet"])

    assert e.value.code == constants.RMKMOUNT_ERROR_CODE
    assert "failed to mount: foo" in caplog.text


def test_interrupt():
    with mock.patch("rmkmount.operations.UnmountOperations") as mock_operations:
        mock_operations().run.side_effect = KeyboardInterrupt()

        with pytest.raises(SystemExit) as e:
            main(["umount", "/mnt/tablet"])

    assert e.value.code == 128 + signal.SIGINT
