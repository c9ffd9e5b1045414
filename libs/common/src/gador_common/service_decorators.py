"""
Decorators for Gador service methods to handle state transitions.
"""

import functools
import logging

from .service_state import ServiceState

logger = logging.getLogger(__name__)


LIFECYCLE_RULES = {
    'start': {
        'valid_states': {ServiceState.INITIALIZED, ServiceState.STOPPED},
        'progress_state': ServiceState.STARTING,
        'completed_state': ServiceState.STARTED
    },
    'stop': {
        'valid_states': {ServiceState.INITIALIZED, ServiceState.STARTING,
                         ServiceState.STARTED, ServiceState.RUNNING, ServiceState.STOPPING},
        'progress_state': ServiceState.STOPPING,
        'completed_state': ServiceState.STOPPED
    },
    'run': {
        'valid_states': {ServiceState.STARTED},
        'progress_state': ServiceState.RUNNING,
        'completed_state': ServiceState.RUNNING  # Remains in RUNNING until stop
    }
}


def lifecycle_service(cls):
    """Class decorator to add service lifecycle state management to methods.

    Wraps start(), stop() and run() so that the outermost call validates the
    current state, enters the in-progress state, and on completion enters the
    completed state. Subclasses override these methods and call super().

    Example:
        @lifecycle_service
        class MyService:
            async def start(self):
                ...
    """
    original_start = getattr(cls, 'start', None)
    original_stop = getattr(cls, 'stop', None)
    original_run = getattr(cls, 'run', None)

    if original_start:
        @functools.wraps(original_start)
        async def wrapped_start(self, *args, **kwargs):
            rules = LIFECYCLE_RULES['start']
            self._state_manager.validate_and_begin_transition(
                'start', rules['valid_states'], rules['progress_state']
            )
            result = await original_start(self, *args, **kwargs)
            self._state_manager.complete_transition(
                'start', rules['progress_state'], rules['completed_state']
            )
            return result

        cls.start = wrapped_start

    if original_stop:
        @functools.wraps(original_stop)
        async def wrapped_stop(self, *args, **kwargs):
            if self.state == ServiceState.STOPPED:
                return
            rules = LIFECYCLE_RULES['stop']
            self._state_manager.validate_and_begin_transition(
                'stop', rules['valid_states'], rules['progress_state']
            )
            result = await original_stop(self, *args, **kwargs)
            self._state_manager.complete_transition(
                'stop', rules['progress_state'], rules['completed_state']
            )
            return result

        cls.stop = wrapped_stop

    if original_run:
        @functools.wraps(original_run)
        async def wrapped_run(self, *args, **kwargs):
            rules = LIFECYCLE_RULES['run']
            self._state_manager.validate_and_begin_transition(
                'run', rules['valid_states'], rules['progress_state']
            )
            return await original_run(self, *args, **kwargs)

        cls.run = wrapped_run

    return cls
