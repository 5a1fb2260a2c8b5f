"""
Modules that give access to the documents stored on the tablet.

The tablet runs an SSH server but no file sharing service, so all requests are
implemented as remote commands: files are stat'ed with stat, read with cat and tail, and
descriptors are searched with grep. The OpenSSH client is used rather than an SSH
library so that the user's existing SSH configuration, keys and agent keep working.

Spawning an ssh client per request would be far too slow if every request had to do a
full handshake. Instead a single connection master is started when the session is
authenticated and all requests are multiplexed over it.
"""

from .common import RemoteStat
from .session import SshSession

__all__ = [
    "RemoteStat",
    "SshSession",
]
