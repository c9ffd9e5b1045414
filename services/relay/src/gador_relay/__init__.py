"""
Gador Relay Service: the state authority and event relay of the installation.

This module accepts WebSocket connections from the stage display and the
remote controls, owns the shared installation state and fans events out.
"""

__version__ = '0.1.0'

from .relay_service import RelayService, run_relay_service

__all__ = ['RelayService', 'run_relay_service']
