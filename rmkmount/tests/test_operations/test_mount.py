from unittest import mock

import pytest

from rmkmount.args import Arguments
from rmkmount.config import Config, DeviceConfig, SshConfig
import rmkmount.constants as constants
from rmkmount.errors import TransportError
from rmkmount.operations import MountOperations


@pytest.fixture
def mock_session():
    with mock.patch("rmkmount.operations.mount.SshSession") as session:
        yield session


@pytest.fixture
def mock_fuse():
    with mock.patch("rmkmount.operations.mount.FUSE") as fuse:
        fuse.return_value.mount.return_value = 0
        yield fuse


def test_mount(tmp_path, mock_session, mock_fuse):
    args = Arguments.parse(["mount", "--ssh=-4", str(tmp_path)])
    config = Config(ssh=SshConfig(identity_file="/keys/id", options=["-C"]))

    assert MountOperations(args, config).run() == 0

    mock_session.assert_called_once_with(
        identity_file="/keys/id", connect_timeout=10, extra_args=["-C", "-4"]
    )

    session = mock_session.return_value
    session.connect.assert_called_once_with(
        constants.DEFAULT_HOST, constants.DEFAULT_PORT
    )
    session.authenticate.assert_called_once_with(constants.DEFAULT_USER, None)

    fs, fuse_config = mock_fuse.call_args[0]
    assert fuse_config.fsname == constants.FILESYSTEM_NAME
    assert fuse_config.read_only
    assert fuse_config.use_ino

    mock_fuse.return_value.mount.assert_called_once_with(
        constants.FILESYSTEM_NAME, str(tmp_path)
    )

    # Session is closed once the file system has been unmounted
    assert session.__exit__.called


def test_mount_overrides(tmp_path, mock_session, mock_fuse):
    args = Arguments.parse(
        ["mount", "--host=tablet", "--port=2222", "--password=pw", str(tmp_path)]
    )
    config = Config(device=DeviceConfig(host="other", user="admin", password="old"))

    MountOperations(args, config).run()

    session = mock_session.return_value
    session.connect.assert_called_once_with("tablet", 2222)
    session.authenticate.assert_called_once_with("admin", "pw")


def test_mount_seeds_file_system(tmp_path, mock_session, mock_fuse):
    args = Arguments.parse(["mount", "--document-root=/data/", str(tmp_path)])

    with mock.patch(
        "rmkmount.operations.mount.RemarkableFileSystem"
    ) as mock_filesystem:
        MountOperations(args, Config()).run()

    assert mock_filesystem.call_args[0][:2] == (mock_session.return_value, "/data/")
    assert mock_filesystem.return_value.seed.called


def test_mount_authentication_failure(tmp_path, mock_session, mock_fuse):
    mock_session.return_value.authenticate.side_effect = TransportError("denied")

    args = Arguments.parse(["mount", str(tmp_path)])

    with pytest.raises(TransportError):
        MountOperations(args, Config()).run()

    assert not mock_fuse.called
    assert mock_session.return_value.__exit__.called


def test_mount_fuse_failure(tmp_path, mock_session, mock_fuse, caplog):
    mock_fuse.return_value.mount.return_value = 1

    args = Arguments.parse(["mount", str(tmp_path)])

    assert MountOperations(args, Config()).run() == 1
    assert "fuse exited with code 1" in caplog.text


def test_mount_missing_mountpoint(tmp_path, mock_session, mock_fuse):
    args = Arguments.parse(["mount", str(tmp_path / "nonexistent")])

    with pytest.raises(RuntimeError):
        MountOperations(args, Config()).run()

    assert not mock_session.called
