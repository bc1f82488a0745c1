"""
Transport layer for process and file access.

Provides abstraction for:
- Running external tools with bounded timeouts
- Background processes (temporary database server)
- Process hand-off (exec)
"""

from kindle.transport.base import NullTransport, Process, Transport
from kindle.transport.local import LocalTransport

__all__ = ["Transport", "Process", "NullTransport", "LocalTransport"]
