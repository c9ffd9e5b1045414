"""
Base service class for Gador services.

BaseService standardizes service behavior across the installation:
- Standard lifecycle methods (start, stop, run) with validated state transitions
- Graceful shutdown handling with signal trapping
- Background task registration and cleanup
- Error recording and statistics tracking
"""

import asyncio
import inspect
import logging
import signal
import time
import traceback
from typing import Any, Callable, Coroutine, Dict, List, Optional, Union

from gador_common.service_state import ServiceState, StateManager
from gador_common.service_decorators import lifecycle_service

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@lifecycle_service
class BaseService:
    """Base class for all services in the Gador installation.

    Subclasses extend start() to set up their resources (then call
    super().start()), register long running coroutines with add_task(), and
    extend stop() to release resources (then call super().stop()).
    """

    def __init__(self, service_name: str, service_type: str = "generic"):
        """Initialize the base service.

        Args:
            service_name: Unique name for this service instance
            service_type: Type of service (for logging and monitoring)
        """
        self.service_name = service_name
        self.service_type = service_type

        self._state_manager = StateManager(service_name, ServiceState.INITIALIZING)

        self.tasks: List[Union[asyncio.Task, Coroutine]] = []

        # Statistics
        self.start_time = time.monotonic()
        self.messages_sent = 0
        self.messages_received = 0
        self.errors = 0

        self._stop_lock = asyncio.Lock()  # Serializes stop() execution
        self._run_task_handle: Optional[asyncio.Task] = None
        self._stop_requested = False

        self._state_manager.state = ServiceState.INITIALIZED

    @property
    def state(self) -> ServiceState:
        """Get the current service state."""
        return self._state_manager.state

    @state.setter
    def state(self, new_state: ServiceState):
        """Set the service state."""
        self._state_manager.state = new_state

    def register_state_callback(self, state: ServiceState, callback: Callable[[], None]):
        """Register a callback for state transitions."""
        self._state_manager.register_state_callback(state, callback)

    async def wait_for_state(self, state: ServiceState, timeout: Optional[float] = None) -> bool:
        """Wait for a specific state."""
        return await self._state_manager.wait_for_state(state, timeout)

    @property
    def running(self) -> bool:
        """Check if the service is currently running."""
        return self.state == ServiceState.RUNNING

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.start_time

    def add_task(self, task_or_coroutine: Union[asyncio.Task, Coroutine]):
        """Register a task to be executed in the service's run loop.

        Args:
            task_or_coroutine: Coroutine or asyncio.Task to execute.
                               Coroutines added while running are scheduled immediately,
                               otherwise they are converted to tasks when run() is called.
        """
        if task_or_coroutine is None:
            logger.warning(f"{self.service_name}: Attempted to add None as a task - ignoring")
            return

        if task_or_coroutine in self.tasks:
            logger.warning(f"{self.service_name}: Task {task_or_coroutine} already registered - ignoring duplicate")
            return

        if asyncio.iscoroutine(task_or_coroutine) and self.running:
            task = asyncio.create_task(task_or_coroutine)
            task.add_done_callback(self._task_done_callback)
            self.tasks.append(task)
            logger.debug(f"{self.service_name}: Created and scheduled task immediately")
        else:
            self.tasks.append(task_or_coroutine)

    async def start(self):
        """Start the service.

        Subclasses initialize their specific components before calling super().start().
        """
        logger.debug(f"Starting {self.service_type} service: {self.service_name}")
        self.start_time = time.monotonic()

    async def stop(self):
        """Stop the service, cancelling the run task and all registered tasks."""
        async with self._stop_lock:
            if self.state == ServiceState.STOPPED:
                logger.debug(f"Service {self.service_name} is already STOPPED. Ignoring stop call.")
                return

            logger.debug(f"Stopping {self.service_name} (lock acquired)...")
            self.state = ServiceState.STOPPING

            current_task = asyncio.current_task()
            if self._run_task_handle and not self._run_task_handle.done():
                if self._run_task_handle is current_task:
                    # stop() called from run()'s own cleanup, which is already unwinding
                    logger.debug(f"stop() called from the run task of {self.service_name}")
                else:
                    logger.debug(f"Cancelling main run task for {self.service_name}.")
                    self._run_task_handle.cancel()
                    try:
                        await self._run_task_handle
                    except asyncio.CancelledError:
                        logger.debug(f"Main run task of {self.service_name} was cancelled as expected.")
                    except Exception as e:
                        logger.warning(f"Main run task of {self.service_name} raised during cancellation: {e!r}",
                                       exc_info=True)

            await self._clear_tasks()

            self.state = ServiceState.STOPPED
            logger.debug(f"Service {self.service_name} stopped")

    def _request_stop(self, suffix: str):
        """Schedule a graceful shutdown without blocking the caller.

        Args:
            suffix: Suffix for the stop task name: "{service_name}-{suffix}-stop"
        """
        if self.state in [ServiceState.STOPPING, ServiceState.STOPPED]:
            logger.debug(f"Stop already requested/completed for {self.service_name}")
            return

        if self._stop_requested:
            logger.debug(f"Stop already requested for {self.service_name} ({suffix})")
            return

        self._stop_requested = True
        logger.info(f"Shutdown requested for {self.service_name} ({suffix})")
        asyncio.create_task(self.stop(), name=f"{self.service_name}-{suffix}-stop")

    def request_stop(self):
        """Request a graceful shutdown of the service. Returns immediately."""
        self._request_stop("requested")

    async def _clear_tasks(self):
        """Cancel outstanding tasks and close never-started coroutines."""
        if not self.tasks:
            return

        logger.debug(f"Cleaning up {len(self.tasks)} registered tasks for {self.service_name}.")
        current_task = asyncio.current_task()
        pending = []
        for task in self.tasks:
            if isinstance(task, asyncio.Task):
                if not task.done():
                    logger.debug(f"Cancelling uncompleted task in {self.service_name}: {task.get_name()}")
                    task.cancel()
                    if task is not current_task:
                        pending.append(task)
            elif inspect.iscoroutine(task):
                task.close()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.tasks = []

    async def run(self):
        """Run the service until stopped.

        Executes all registered tasks concurrently and handles cleanup on termination.
        """
        if not self.tasks:
            raise RuntimeError("No tasks registered for service")

        logger.debug(f"Service {self.service_name} running")
        loop = asyncio.get_running_loop()
        installed_signals = []

        try:
            self._run_task_handle = asyncio.current_task()

            for sig in SHUTDOWN_SIGNALS:
                try:
                    loop.add_signal_handler(
                        sig,
                        lambda s=sig: asyncio.create_task(self._handle_signal_async(s))
                    )
                    installed_signals.append(sig)
                except (NotImplementedError, RuntimeError):
                    # Not supported on this platform or outside the main thread
                    pass

            task_objects = []
            for task in self.tasks:
                if isinstance(task, asyncio.Task):
                    task_objects.append(task)
                elif inspect.iscoroutine(task):
                    task_name = f"{self.service_name}-{getattr(task, '__name__', 'task')}"
                    logger.debug(f"Converting coroutine to task with name: {task_name}")
                    task_objects.append(asyncio.create_task(task, name=task_name))
                else:
                    logger.warning(f"Unsupported task type found in tasks list: {type(task)}: {task}")

            self.tasks = list(task_objects)

            for task in task_objects:
                task.add_done_callback(self._task_done_callback)

            # task errors are recorded by _task_done_callback
            results = await asyncio.gather(*task_objects, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                    tb_str = ''.join(traceback.format_exception(type(result), result, result.__traceback__))
                    logger.debug(f"Traceback for task error:\n{tb_str}")

        except asyncio.CancelledError:
            logger.debug(f"Service {self.service_name} run task was cancelled, initiating stop.")

        except Exception as e:
            logger.error(f"Unexpected error in service {self.service_name} run execution: {e}")
            self.record_error(e, is_fatal=True)
            raise

        finally:
            for sig in installed_signals:
                loop.remove_signal_handler(sig)
            if self.state not in [ServiceState.STOPPING, ServiceState.STOPPED]:
                logger.debug(f"Service {self.service_name} run() ending without stop, calling stop().")
                try:
                    await self.stop()
                except Exception as e:
                    logger.error(f"Error during stop() called from run() for {self.service_name}: {e}",
                                 exc_info=True)
                    self.record_error(e)
            logger.debug(f"Service {self.service_name} run() completed. Final state: {self.state}")

    async def _handle_signal_async(self, sig):
        """Handle signals in the asyncio event loop by calling stop()."""
        signal_name = signal.Signals(sig).name
        logger.info(f"Received signal {signal_name}, shutting down {self.service_name} gracefully...")

        if self.state in [ServiceState.STOPPING, ServiceState.STOPPED]:
            logger.debug(f"Service {self.service_name} is already {self.state.value}. Ignoring {signal_name}.")
            return

        try:
            await self.stop()
        except Exception as e:
            logger.error(f"Error during signal-initiated stop for {self.service_name}: {e}", exc_info=True)
            self.record_error(e, is_fatal=False)
            self.state = ServiceState.STOPPED

    def _task_done_callback(self, task: asyncio.Task):
        """Detect task errors as they happen and stop the service on failure."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            self.record_error(exc, custom_message=f"Error in task {task.get_name()} of {self.service_name}: {exc!r}")
            if self.state == ServiceState.RUNNING:
                logger.warning(f"Scheduling service {self.service_name} to stop due to task error")
                self._request_stop("task-error")

    def record_error(self, error: Exception, is_fatal: bool = False, custom_message: Optional[str] = None):
        """Record an error and update service statistics.

        Args:
            error: The exception that occurred
            is_fatal: Whether this error should shut the service down
            custom_message: Optional custom message to log instead of default format
        """
        self.errors += 1

        log_message = custom_message or (
            f"{'Fatal error' if is_fatal else 'Error'} in service {self.service_name}: {error!r}"
        )
        logger.error(log_message, exc_info=error)

        if is_fatal:
            self._request_stop("fatal-error")

    def get_stats(self) -> Dict[str, Any]:
        """Service statistics for status endpoints and logs."""
        return {
            "service": self.service_name,
            "type": self.service_type,
            "state": self.state.value,
            "uptime": round(self.uptime, 3),
            "messages_sent": self.messages_sent,
            "messages_received": self.messages_received,
            "errors": self.errors,
        }
