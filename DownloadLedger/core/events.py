"""Filesystem events and the filter deciding which ones are finished downloads.

Downloads are written in several steps, each firing created/modified events. Only an
event of a terminal kind means the file is complete and may be recorded: ``closed``
(the writer closed the file) or ``moved`` (a finished temporary file was renamed into
place, matched by its destination).
"""
import os
import time
from dataclasses import dataclass, field
from typing import Iterable

from watchdog.events import EVENT_TYPE_CLOSED, EVENT_TYPE_MOVED, FileSystemEvent

TERMINAL_KINDS = (EVENT_TYPE_CLOSED, EVENT_TYPE_MOVED)


@dataclass(frozen=True)
class FilesystemEvent:
    """A single filesystem notification."""
    path: str
    kind: str
    timestamp: float = field(default_factory=time.time)
    is_directory: bool = False

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    @classmethod
    def from_watchdog(cls, event: FileSystemEvent) -> 'FilesystemEvent':
        """Build from a watchdog event. Moves are reported under their destination path."""
        path = event.src_path
        if event.event_type == EVENT_TYPE_MOVED and getattr(event, 'dest_path', ''):
            path = event.dest_path
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return cls(path=path, kind=event.event_type, is_directory=event.is_directory)


class EventFilter:
    """Matches file events with the watched extension and a terminal event kind."""

    def __init__(self, extension: str = '.torrent', terminal_kinds: Iterable[str] = TERMINAL_KINDS):
        if not extension:
            raise ValueError('An extension to watch is required.')
        self.extension = extension.lower()
        self.terminal_kinds = frozenset(terminal_kinds)

    def matches(self, event: FilesystemEvent) -> bool:
        """Return True if the event signals a completed download."""
        if event.is_directory:
            return False
        if event.kind not in self.terminal_kinds:
            return False
        return event.path.lower().endswith(self.extension)
