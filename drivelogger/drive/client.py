"""
Google Drive API client for Drive Logger.

Handles all HTTP interactions with the Drive API: finding or creating the
log folder and creating or overwriting one Markdown file per conversation.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from ..constants import (
    DRIVE_API,
    UPLOAD_API,
    FOLDER_NAME,
    FOLDER_MIME_TYPE,
    DOCUMENT_MIME_TYPE,
)
from .http import api_request

logger = logging.getLogger(__name__)

MULTIPART_BOUNDARY = "-------314159265358979323846"


@dataclass
class DriveClientConfig:
    """Configuration for DriveClient."""
    folder_name: str = FOLDER_NAME
    timeout: int = 60


def multipart_body(metadata: dict, content: str, boundary: str = MULTIPART_BOUNDARY) -> str:
    """
    Build a multipart/related body: JSON metadata part, then Markdown part.

    Returns:
        Body string; send with Content-Type multipart/related; boundary=<boundary>
    """
    delimiter = f"\r\n--{boundary}\r\n"
    close_delimiter = f"\r\n--{boundary}--"
    return (
        delimiter
        + "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        + json.dumps(metadata)
        + delimiter
        + f"Content-Type: {DOCUMENT_MIME_TYPE}; charset=UTF-8\r\n\r\n"
        + content
        + close_delimiter
    )


class DriveClient:
    """
    Google Drive API client.

    Every call takes the access token explicitly so the caller decides when
    to refresh it. Non-2xx responses raise RemoteError.
    """

    API_FILES = f"{DRIVE_API}/files"
    UPLOAD_FILES = f"{UPLOAD_API}/files"

    def __init__(self, config: Optional[DriveClientConfig] = None, session: Optional[requests.Session] = None):
        """
        Initialize the Drive client.

        Args:
            config: Client configuration
            session: requests session (injected in tests)
        """
        self.config = config or DriveClientConfig()
        self.session = session or requests.Session()
        self._api_calls = 0

    @property
    def api_calls(self) -> int:
        """Total API calls made by this client."""
        return self._api_calls

    def _request(self, method: str, url: str, token: str, **kwargs):
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        self._api_calls += 1
        return api_request(
            self.session, method, url,
            timeout=self.config.timeout,
            headers=headers,
            **kwargs,
        )

    def ensure_folder(self, token: str) -> str:
        """
        Find the log folder by exact name, creating it if missing.

        Two hosts racing here can both create a folder; later lookups then
        pick whichever Drive lists first.

        Returns:
            Folder ID
        """
        name = self.config.folder_name.replace("\\", "\\\\").replace("'", "\\'")
        query = f"name='{name}' and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        data = self._request(
            "GET", self.API_FILES, token,
            params={"q": query, "fields": "files(id,name)"},
        )
        files = (data or {}).get("files") or []
        if files:
            return files[0]["id"]

        created = self._request(
            "POST", self.API_FILES, token,
            headers={"Content-Type": "application/json"},
            data=json.dumps({"name": self.config.folder_name, "mimeType": FOLDER_MIME_TYPE}),
        )
        logger.info("[Drive] Created folder '%s' (%s)", self.config.folder_name, created["id"])
        return created["id"]

    def create_file(self, token: str, folder_id: str, name: str, content: str) -> str:
        """Create a Markdown file in the folder. Returns the new file ID."""
        metadata = {"name": name, "parents": [folder_id], "mimeType": DOCUMENT_MIME_TYPE}
        data = self._request(
            "POST", self.UPLOAD_FILES, token,
            params={"uploadType": "multipart"},
            headers={"Content-Type": f"multipart/related; boundary={MULTIPART_BOUNDARY}"},
            data=multipart_body(metadata, content).encode("utf-8"),
        )
        return data["id"]

    def update_file(self, token: str, file_id: str, name: str, content: str) -> str:
        """Overwrite name and content of an existing file, keeping its ID."""
        data = self._request(
            "PATCH", f"{self.UPLOAD_FILES}/{file_id}", token,
            params={"uploadType": "multipart"},
            headers={"Content-Type": f"multipart/related; boundary={MULTIPART_BOUNDARY}"},
            data=multipart_body({"name": name}, content).encode("utf-8"),
        )
        return (data or {}).get("id") or file_id

    def upsert(self, token: str, folder_id: str, cached_id: Optional[str], name: str, content: str) -> str:
        """
        Create the file when there is no cached ID, otherwise overwrite it.

        Returns:
            Drive file ID (the cached one on update)
        """
        if not cached_id:
            file_id = self.create_file(token, folder_id, name, content)
            logger.info("[Drive] Created %s (%s)", name, file_id)
            return file_id
        self.update_file(token, cached_id, name, content)
        logger.debug("[Drive] Updated %s (%s)", name, cached_id)
        return cached_id
