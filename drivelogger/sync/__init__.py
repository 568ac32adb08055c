"""
Observer-side sync module.

Handles transcript extraction, change detection, scan scheduling and the
observer session that sends snapshots to the host.
"""

from .extractor import MessageRecord, Snapshot, take_snapshot, render_markdown, file_name_for
from .detector import ChangeDetector, fingerprint
from .scheduler import ScanScheduler, TriggerReason
from .sources import PageSource, PageEvent, FilePageSource, BrowserPageSource
from .session import ObserverSession

__all__ = [
    # Extraction
    "MessageRecord",
    "Snapshot",
    "take_snapshot",
    "render_markdown",
    "file_name_for",
    # Change detection
    "ChangeDetector",
    "fingerprint",
    # Scheduling
    "ScanScheduler",
    "TriggerReason",
    # Page sources
    "PageSource",
    "PageEvent",
    "FilePageSource",
    "BrowserPageSource",
    # Session
    "ObserverSession",
]
