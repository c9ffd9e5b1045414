"""
Gador clients: connection manager, remote control and stage mirror.
"""

__version__ = '0.1.0'

from .connection import ClientConnectionManager, ConnectionState
from .remote import RemoteControl
from .stage import ActivePhrase, StageMirror

__all__ = [
    'ClientConnectionManager',
    'ConnectionState',
    'RemoteControl',
    'ActivePhrase',
    'StageMirror',
]
