"""
Observer session: scan the page, detect changes, send snapshots.

The observer never touches credentials or bindings; it only talks to the
host through a PortClient.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..channel.client import PortClient
from ..channel.protocol import Ping, SaveSnapshot
from ..constants import NO_CONVERSATION_ID
from ..errors import ChannelError
from .detector import ChangeDetector, fingerprint
from .extractor import Snapshot, take_snapshot, file_name_for, conversation_id_from_url
from .scheduler import ScanScheduler, TriggerReason
from .sources import PageSource, PageEvent

logger = logging.getLogger(__name__)


class ObserverSession:
    """
    Ties a page source, the scheduler, the change detector and the channel.

    At most one save is in flight; scans finishing while one is running are
    dropped and picked up again by a later trigger.
    """

    def __init__(
        self,
        source: PageSource,
        client: PortClient,
        scheduler_factory: Callable[[Callable], ScanScheduler] = ScanScheduler,
        detector: Optional[ChangeDetector] = None,
        ping_interval: float = 15.0,
    ):
        self.source = source
        self.client = client
        self.detector = detector or ChangeDetector()
        self.scheduler = scheduler_factory(self.scan_and_save)
        self.ping_interval = ping_interval
        self.conversation_id: str = NO_CONVERSATION_ID
        self.url: Optional[str] = None
        self.saving = False
        self.uploads = 0
        self._ping_task: Optional[asyncio.Task] = None

    @property
    def last_snapshot_hash(self) -> Optional[str]:
        return self.detector.last_hash

    # ---- conversation identity ----

    def reset_for_new_conversation(self, url: str):
        """Switch to the conversation at url and schedule a rescan burst."""
        self.url = url
        self.conversation_id = conversation_id_from_url(url)
        self.detector.reset()
        logger.info("[Sync] Conversation: %s", self.conversation_id)
        self.scheduler.trigger(TriggerReason.ROUTE_CHANGE)

    async def check_route(self) -> bool:
        """Detect a URL change. Returns True if the conversation changed."""
        url = await self.source.url()
        if url != self.url:
            self.reset_for_new_conversation(url)
            return True
        return False

    # ---- scanning ----

    async def take_snapshot(self) -> Optional[Snapshot]:
        html = await self.source.content()
        return take_snapshot(html, self.url or "")

    async def scan_and_save(self):
        """One scan cycle. Extraction failures are logged and dropped."""
        try:
            await self.check_route()
            snapshot = await self.take_snapshot()
        except Exception as e:
            logger.debug("[Sync] Scan failed: %s", e)
            return
        if snapshot is None:
            return

        snapshot_hash = fingerprint(snapshot.body)
        if not self.detector.is_due(snapshot_hash):
            return
        if self.saving:
            logger.debug("[Sync] Save in flight, dropping scan")
            return

        response = await self.send_snapshot(snapshot)
        # A route change during the save already reset the detector
        if snapshot.conversation_id != self.conversation_id:
            return
        if response.get("ok"):
            self.detector.accept(snapshot_hash)
            self.uploads += 1
            logger.info("[Sync] Saved %s (%d messages)", response.get("fileId"), len(snapshot.messages))
        else:
            self.detector.reject(snapshot_hash)
            logger.warning("[Sync] Save failed: %s", response.get("error"))

    async def send_snapshot(self, snapshot: Snapshot) -> dict:
        """Preflight PING, then SAVE_SNAPSHOT. Never raises."""
        self.saving = True
        try:
            pong = await self.client.call(Ping().to_payload())
            if not pong or pong.get("ok") is not True:
                return {"ok": False, "error": ChannelError.SW_UNAVAILABLE}
            request = SaveSnapshot(
                conversation_id=snapshot.conversation_id,
                file_name=file_name_for(snapshot.conversation_id, snapshot.title, datetime.now()),
                content=snapshot.document,
            )
            return await self.client.call(request.to_payload())
        finally:
            self.saving = False

    # ---- page events ----

    def on_page_event(self, event: str):
        # Navigations are picked up by check_route() at the start of the scan
        if event in (PageEvent.MUTATION, PageEvent.NAVIGATED):
            self.scheduler.trigger(TriggerReason.MUTATION)
        elif event == PageEvent.MANUAL:
            self.scheduler.trigger(TriggerReason.MANUAL)
        elif event == PageEvent.USER_ACTION:
            self.scheduler.trigger(TriggerReason.USER_ACTION)
        elif event == PageEvent.HIDDEN:
            self.scheduler.pause()
            self._stop_ping()
        elif event == PageEvent.VISIBLE:
            self.scheduler.resume()
            self._start_ping()

    # ---- lifecycle ----

    async def _ping_loop(self):
        while True:
            await asyncio.sleep(self.ping_interval)
            response = await self.client.call(Ping().to_payload())
            if not response.get("ok"):
                logger.debug("[Channel] Ping failed: %s", response.get("error"))

    def _start_ping(self):
        if self._ping_task is None or self._ping_task.done():
            self._ping_task = asyncio.get_running_loop().create_task(self._ping_loop())

    def _stop_ping(self):
        if self._ping_task is not None:
            self._ping_task.cancel()
            self._ping_task = None

    async def start(self):
        """Attach to the page and start polling and pinging."""
        self.source.set_listener(self.on_page_event)
        await self.source.start()
        await self.check_route()
        self.scheduler.start()
        self._start_ping()

    async def stop(self):
        self._stop_ping()
        await self.scheduler.stop()
        await self.source.close()
        await self.client.close()
