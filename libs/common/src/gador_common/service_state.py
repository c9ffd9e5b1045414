"""
Service state management for Gador services.

This module provides a state management class that handles service lifecycle states,
state transitions, events, and callbacks.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    """Service lifecycle states."""
    INITIALIZING = "initializing"  # Service is in the process of initialization
    INITIALIZED = "initialized"    # Service has been fully instantiated
    STARTING = "starting"          # Service is in the process of starting up
    STARTED = "started"            # Service has completed startup but not yet running
    RUNNING = "running"            # Service is fully operational
    STOPPING = "stopping"          # Service is in the process of shutting down
    STOPPED = "stopped"            # Service has been fully stopped


class StateManager:
    """Manages service state transitions with events and callbacks."""

    def __init__(self, service_name: str, initial_state: ServiceState = ServiceState.INITIALIZING):
        """Initialize the state manager.

        Args:
            service_name: Name of the service for logging purposes
            initial_state: Initial state to start in
        """
        self.service_name = service_name
        self._state = initial_state

        self._state_events = {state: asyncio.Event() for state in ServiceState}
        self._state_events[initial_state].set()

        self._state_transition_callbacks: Dict[ServiceState, List[Callable[[], None]]] = {}

        # Track transition history for debugging
        self._state_history: List[Tuple[ServiceState, float]] = [(initial_state, time.monotonic())]

        logger.debug(f"StateManager initialized for {service_name} in state {initial_state}")

    @property
    def state(self) -> ServiceState:
        """Get the current service state."""
        return self._state

    @state.setter
    def state(self, new_state: ServiceState):
        """Set the service state and trigger the corresponding event."""
        old_state = self._state
        if new_state == old_state:
            return

        self._state_history.append((new_state, time.monotonic()))
        logger.debug(f"Service {self.service_name} state changing from {old_state} to {new_state}")

        self._state_events[old_state].clear()
        self._state_events[new_state].set()
        self._state = new_state

        for callback in self._state_transition_callbacks.get(new_state, []):
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in state transition callback: {e}")

        logger.info(f"Service {self.service_name} state changed to {new_state.value}")

    def register_state_callback(self, state: ServiceState, callback: Callable[[], None]):
        """Register a callback to be called when the service enters a specific state.

        Args:
            state: State to trigger the callback
            callback: Function to call when the state is entered
        """
        self._state_transition_callbacks.setdefault(state, []).append(callback)

    async def wait_for_state(self, state: ServiceState, timeout: Optional[float] = None) -> bool:
        """Wait until the service reaches the specified state.

        Args:
            state: State to wait for
            timeout: Maximum time to wait in seconds, or None to wait indefinitely

        Returns:
            True if the state was reached, False if timeout occurred
        """
        if self._state == state:
            return True

        try:
            await asyncio.wait_for(self._state_events[state].wait(), timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug(f"Timeout waiting for service {self.service_name} to reach state {state}")
            return False

    def get_state_history(self):
        """Get the history of state transitions as (state, monotonic timestamp) tuples."""
        return self._state_history

    def validate_and_begin_transition(self, method_name: str, valid_states: Set[ServiceState],
                                      progress_state: ServiceState) -> None:
        """Validate current state and begin a lifecycle method transition.

        Args:
            method_name: Name of the lifecycle method (for logging)
            valid_states: Set of valid states for this transition
            progress_state: The "in progress" state to set (e.g., STARTING)

        Raises:
            RuntimeError: If current state is not valid for this transition
        """
        current = self._state

        if current not in valid_states:
            raise RuntimeError(
                f"Cannot call {method_name}() when service {self.service_name} is in {current} state. "
                f"Valid states are: {', '.join(str(s.value) for s in valid_states)}"
            )

        if current != progress_state:
            logger.debug(f"Service {self.service_name} beginning {method_name}: {current} -> {progress_state}")
            self.state = progress_state

    def complete_transition(self, method_name: str, progress_state: ServiceState,
                            completed_state: ServiceState) -> None:
        """Complete a lifecycle method transition.

        Only changes state if the service is still in the expected in-progress state.
        """
        current = self._state

        if current == progress_state:
            logger.debug(f"Service {self.service_name} completing {method_name}: {current} -> {completed_state}")
            self.state = completed_state
        else:
            logger.debug(f"Service {self.service_name} state changed from {progress_state} to {current} "
                         f"during {method_name}. Not changing to {completed_state}.")
