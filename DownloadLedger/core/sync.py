"""Watch a download directory and record every finished download in the ledger.

The watchdog observer thread only queues events. A single dispatch loop takes them off
the queue in arrival order, filters them, and for each finished download runs the
append sequence:

    obtain credential -> read ledger rows -> plan target row -> append row

The whole sequence runs under one lock, so at most one append is in flight and each
append sees the rows written by the previous one. The sheet has no conflict detection
of its own: concurrent editors outside this process can still cause duplicate or
skipped rows.

Errors while appending one entry are logged and the loop keeps watching. Losing the
filesystem subscription stops the loop.
"""
import enum
import logging
import pathlib
import queue
import threading
from typing import Any, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .auth import CredentialCache
from .events import EventFilter, FilesystemEvent
from .planner import RangeDescriptor, RangePlanner
from .service import DEFAULT_TIMEOUT, LedgerClient, get_service
from ..settings.lib import LedgerLocation
from ..status import status

# Errors that cost one entry but leave the watcher running
APPEND_ERRORS = (
    status.CredentialUnavailableException,
    status.LedgerReadException,
    status.LedgerWriteException,
)


class State(enum.StrEnum):
    """Lifecycle of the synchronizer."""
    Idle = enum.auto()
    Watching = enum.auto()
    Appending = enum.auto()
    Stopped = enum.auto()


class QueueEventHandler(FileSystemEventHandler):
    """Forwards every watchdog event onto a queue for the dispatch loop."""

    def __init__(self, events: queue.Queue) -> None:
        super().__init__()
        self.events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self.events.put(FilesystemEvent.from_watchdog(event))


class Synchronizer:
    """Turns finished downloads into ledger rows, one at a time.

    Args:
        location: The spreadsheet and worksheet to append to.
        credentials: The credential cache consulted when the ledger client is first needed.
        event_filter: Decides which events are finished downloads.
        planner: Computes append targets. Defaults to column A of the location's worksheet.
        client_factory: Builds a LedgerClient from a credential.
        timeout: Socket timeout for the default client factory.
        observer_factory: Builds the watchdog observer.
        poll_interval: Seconds between health checks of the subscription while idle.
    """

    def __init__(
            self,
            location: LedgerLocation,
            credentials: CredentialCache,
            event_filter: Optional[EventFilter] = None,
            planner: Optional[RangePlanner] = None,
            client_factory: Optional[Callable[[Any], LedgerClient]] = None,
            timeout: float = DEFAULT_TIMEOUT,
            observer_factory: Optional[Callable[[], Any]] = None,
            poll_interval: float = 0.5,
    ) -> None:
        self.location = location
        self.credentials = credentials
        self.event_filter = event_filter or EventFilter()
        self.planner = planner or RangePlanner(location.worksheet)
        self.client_factory = client_factory or (
            lambda creds: LedgerClient(location, get_service(creds, timeout=timeout))
        )
        self.observer_factory = observer_factory or Observer
        self.poll_interval = poll_interval

        self._append_lock = threading.Lock()
        self._state_changed = threading.Condition()
        self._state = State.Idle
        self._events: queue.Queue = queue.Queue()
        self._stop_requested = threading.Event()
        self._client: Optional[LedgerClient] = None
        self._thread: Optional[threading.Thread] = None

        self.error: Optional[BaseException] = None
        self.processed = 0
        self.appended = 0
        self.failed = 0

    @property
    def state(self) -> State:
        return self._state

    def _set_state(self, state: State) -> None:
        with self._state_changed:
            self._state = state
            self._state_changed.notify_all()

    def _get_client(self) -> LedgerClient:
        if self._client is None:
            creds = self.credentials.obtain()
            self._client = self.client_factory(creds)
        return self._client

    def append_entry(self, name: str) -> RangeDescriptor:
        """
        Record ``name`` as a new ledger row.

        Blocks while another append is in progress.

        Returns:
            The range the row was written to.

        Raises:
            status.CredentialUnavailableException: If no credential can be obtained.
            status.LedgerReadException: If the current rows cannot be read.
            status.LedgerWriteException: If the row cannot be written.
        """
        with self._append_lock:
            previous = self._state
            self._set_state(State.Appending)
            try:
                client = self._get_client()
                rows = client.read_all()
                target = self.planner.plan(len(rows))
                client.append([name], target)
                logging.info(f'Recorded "{name}" at {target.a1}.')
                return target
            finally:
                # stop() may have run meanwhile
                if self._state == State.Appending:
                    self._set_state(previous)

    def dispatch(self, event: FilesystemEvent) -> bool:
        """
        Handle one filesystem event.

        Returns:
            True if the event was a finished download and was recorded.
        """
        logging.debug(f'Event "{event.kind}": {event.path}')
        try:
            if not self.event_filter.matches(event):
                return False

            logging.info(f'Download finished: {event.filename}')
            try:
                self.append_entry(event.filename)
            except APPEND_ERRORS as ex:
                self.failed += 1
                logging.error(f'Failed to record "{event.filename}": {ex}')
                return False
            except Exception as ex:
                self.failed += 1
                logging.exception(f'Unexpected error recording "{event.filename}": {ex}')
                return False

            self.appended += 1
            return True
        finally:
            with self._state_changed:
                self.processed += 1
                self._state_changed.notify_all()

    def _check_subscription(self, observer: Any, directory: pathlib.Path) -> None:
        if not observer.is_alive():
            raise status.WatchSubsystemException('The filesystem observer stopped unexpectedly.')
        if not directory.is_dir():
            raise status.WatchSubsystemException(f'"{directory}" is no longer accessible.')

    def run(self, directory) -> None:
        """
        Watch ``directory`` (non-recursively) and record finished downloads until stopped.

        Raises:
            status.WatchSubsystemException: If the directory cannot be watched, or the
                subscription is lost.
        """
        directory = pathlib.Path(directory).expanduser()
        if self._stop_requested.is_set():
            self._set_state(State.Stopped)
            return

        if not directory.is_dir():
            self._set_state(State.Stopped)
            raise status.WatchSubsystemException(f'"{directory}" is not a directory.')

        observer = self.observer_factory()
        try:
            observer.schedule(QueueEventHandler(self._events), str(directory), recursive=False)
            observer.start()
        except Exception as ex:
            self._set_state(State.Stopped)
            raise status.WatchSubsystemException(f'Cannot watch "{directory}": {ex}') from ex

        self._set_state(State.Watching)
        logging.info(f'Watching "{directory}" for *{self.event_filter.extension} files...')
        try:
            while not self._stop_requested.is_set():
                self._check_subscription(observer, directory)
                try:
                    event = self._events.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue
                self.dispatch(event)
        finally:
            self._set_state(State.Stopped)
            observer.stop()
            observer.join(timeout=10)
            logging.info('Stopped watching.')

    def _run_in_thread(self, directory) -> None:
        try:
            self.run(directory)
        except Exception as ex:
            self.error = ex
            logging.error(f'Watcher stopped: {ex}')

    def start(self, directory) -> threading.Thread:
        """Run the watch loop on a background thread and return the thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError('The synchronizer is already running.')
        self._stop_requested.clear()
        self.error = None
        self._set_state(State.Idle)
        self._thread = threading.Thread(
            target=self._run_in_thread, args=(directory,), name='DownloadLedgerSync', daemon=True)
        self._thread.start()
        return self._thread

    def wait_until_watching(self, timeout: Optional[float] = None) -> bool:
        """Block until the subscription is live. Returns False if the loop stopped instead."""
        with self._state_changed:
            self._state_changed.wait_for(
                lambda: self._state in (State.Watching, State.Appending, State.Stopped), timeout)
            return self._state in (State.Watching, State.Appending)

    def wait_processed(self, count: int, timeout: Optional[float] = None) -> bool:
        """Block until at least ``count`` events have been dispatched."""
        with self._state_changed:
            return self._state_changed.wait_for(lambda: self.processed >= count, timeout)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Request the watch loop to stop and wait for a background thread to finish."""
        self._stop_requested.set()
        if self._thread is not None:
            self._thread.join(timeout)
        elif self._state == State.Idle:
            self._set_state(State.Stopped)
