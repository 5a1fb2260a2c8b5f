"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
import shlex
from typing import List, Optional

import rmkmount.constants as constants
from rmkmount.logger import log


@dataclass
class DeviceConfig:
    """Configuration variables describing how to reach the tablet."""

    host: str = constants.DEFAULT_HOST
    port: int = constants.DEFAULT_PORT
    user: str = constants.DEFAULT_USER
    password: Optional[str] = None

    document_root: str = constants.DEFAULT_DOCUMENT_ROOT

    @staticmethod
    def load(section: SectionProxy) -> DeviceConfig:
        """Load overridden variables from a section within a config file."""
        config = DeviceConfig()

        config.host = section.get("host", fallback=config.host)
        config.port = section.getint("port", fallback=config.port)
        config.user = section.get("user", fallback=config.user)
        config.password = section.get("password", fallback=config.password)
        config.document_root = section.get(
            "document_root", fallback=config.document_root
        )

        return config


@dataclass
class SshConfig:
    """Configuration variables passed along to the OpenSSH client."""

    identity_file: Optional[str] = None
    connect_timeout: int = 10
    options: List[str] = field(default_factory=list)

    @staticmethod
    def load(section: SectionProxy) -> SshConfig:
        """Load overridden variables from a section within a config file."""
        config = SshConfig()

        identity_file = section.get("identity_file", fallback=None)
        if identity_file:
            config.identity_file = os.path.expanduser(identity_file)

        config.connect_timeout = section.getint(
            "connect_timeout", fallback=config.connect_timeout
        )
        config.options = shlex.split(section.get("options", fallback=""))

        return config


@dataclass
class Config:
    """Configuration variables."""

    device: DeviceConfig = field(default_factory=DeviceConfig)
    ssh: SshConfig = field(default_factory=SshConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "device" in parser:
                config.device = DeviceConfig.load(parser["device"])

            if "ssh" in parser:
                config.ssh = SshConfig.load(parser["ssh"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config for {config.device.user}@{config.device.host}")

        return config
