"""
Drive Logger - Mirror live chat transcripts into Google Drive.

An observer watches a conversation page and sends snapshots over a
channel to a privileged host, which holds the OAuth credentials and
writes one Drive file per conversation.

Import from submodules directly:
    from drivelogger.config import LoggerSettings
    from drivelogger.drive import TokenManager, DriveClient
    from drivelogger.channel import PortClient, HostDispatcher
    from drivelogger.sync import ObserverSession, ScanScheduler
"""


def _get_version():
    """Read version from VERSION file."""
    from pathlib import Path
    version_file = Path(__file__).parent.parent / "VERSION"
    if version_file.exists():
        return version_file.read_text().strip()
    return "0.0.0"


__version__ = _get_version()
