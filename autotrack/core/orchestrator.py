"""AutoTrack orchestrator.

Ties the scan session, the chunk driver, the credential flow and the phase
controller together. This is the only place that changes which scan is
active.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional

from autotrack.core.api import ApiError, ScanApi
from autotrack.core.auth import CredentialFlow
from autotrack.core.driver import ChunkedScanDriver
from autotrack.core.models import (
    ACTIVE_STATUSES, COMPLETED, CRAWLING, DISCOVERING, NICHE_DETECTED, ChunkProgress, Scan,
)
from autotrack.core.phase import DisplayPhase, PhaseFlags, derive_phase
from autotrack.parsers.target import InvalidTarget, normalize_website_url

# driver step that just finished -> scan status the backend moved to
_HANDOFF = {"detecting_niche": NICHE_DETECTED, "finalizing": COMPLETED}


@dataclass
class ScanSession:
    """Which scan is being watched and how often it is polled."""
    scan_id: Optional[str] = None
    poll_interval: float = 3.0


def pick_active_scan(history: List[Scan]) -> Optional[str]:
    """First scan still in progress, else the newest one if it completed."""
    for scan in history:
        if scan.status in ACTIVE_STATUSES:
            return scan.id
    if history and history[0].status == COMPLETED:
        return history[0].id
    return None


class AutoTrack:
    def __init__(self, api: ScanApi, logger=None, poll_interval: float = 3.0,
                 ui_delay: float = 2.0):
        self.api = api
        self.logger = logger
        self.session = ScanSession(poll_interval=poll_interval)
        self.history: List[Scan] = []
        self.scan: Optional[Scan] = None
        self.start_error: Optional[str] = None
        self._driver_phase = "idle"
        self.driver = ChunkedScanDriver(api, logger=logger, on_update=self._on_progress)
        self.credentials = CredentialFlow(api, self.driver, logger=logger, ui_delay=ui_delay)
        self._autostart = False
        self._history_loaded = False
        self._task: Optional[asyncio.Task] = None
        self._detail_task: Optional[asyncio.Task] = None

    # ── derived state ──────────────────────────────────────────

    @property
    def active_scan_id(self) -> Optional[str]:
        return self.session.scan_id

    @property
    def progress(self) -> ChunkProgress:
        return self.driver.state

    @property
    def flags(self) -> PhaseFlags:
        status = self.scan.status if self.scan and self.scan.id == self.active_scan_id else None
        return derive_phase(self.active_scan_id, status, self.driver.state)

    @property
    def display(self) -> DisplayPhase:
        return self.flags.display

    @property
    def past_scans(self) -> List[Scan]:
        return [s for s in self.history if s.id != self.active_scan_id]

    @property
    def niche_preselection(self) -> str:
        if self.scan and self.scan.detected_niche:
            return self.scan.detected_niche
        return self.driver.state.detected_niche or "other"

    @property
    def failure_message(self) -> str:
        return (self.driver.state.error
                or (self.scan.error_message if self.scan else None)
                or "An unknown error occurred during the scan.")

    # ── polling ────────────────────────────────────────────────

    async def refresh(self):
        """One poll: history, active scan detail, then auto-start if due."""
        self.history = await self.api.list_scans()
        if not self._history_loaded:
            self._history_loaded = True
            if self.active_scan_id is None:
                picked = pick_active_scan(self.history)
                if picked:
                    self._set_active(picked)
        if self.active_scan_id:
            self.scan = await self.api.get_scan(self.active_scan_id)
        else:
            self.scan = None
        self._maybe_start_phase1()

    async def watch(self, render: Callable[["AutoTrack"], Awaitable[bool]]):
        """Poll until ``render`` returns False."""
        while True:
            try:
                await self.refresh()
            except ApiError as exc:
                if self.logger:
                    self.logger.warn(f"Poll failed: {exc}")
            if not await render(self):
                return
            await asyncio.sleep(self.session.poll_interval)

    async def wait_for_driver(self):
        """Let the current chunk loop run to its end (tests, CLI shutdown)."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})
        detail = self._detail_task
        if detail is not None:
            await asyncio.wait({detail})

    # ── user actions ───────────────────────────────────────────

    async def start_scan(self, website_url: Optional[str], max_pages: Optional[int] = None,
                         max_depth: Optional[int] = None) -> Optional[Scan]:
        self.start_error = None
        try:
            url = normalize_website_url(website_url) if website_url else None
        except InvalidTarget as exc:
            self.start_error = str(exc)
            return None

        try:
            scan = await self.api.start_scan(url, max_pages, max_depth)
        except ApiError as exc:
            self.start_error = exc.message or "Failed to start scan"
            if self.logger:
                self.logger.fail(f"Failed to start scan: {self.start_error}")
            return None

        if self.logger:
            self.logger.ok(f"Scan {scan.id} started for {scan.website_url or url}")
        self._set_active(scan.id)
        self.scan = scan
        self._autostart = True
        self._maybe_start_phase1()
        return scan

    async def confirm_niche(self, niche: str) -> bool:
        if not self.active_scan_id:
            return False
        try:
            await self.api.confirm_niche(self.active_scan_id, niche)
        except ApiError as exc:
            if self.logger:
                self.logger.fail(f"Failed to confirm niche: {exc}")
            return False
        if self.logger:
            self.logger.ok(f"Niche confirmed: {niche}")
        self._task = self.driver.spawn("phase2")
        return True

    async def cancel_scan(self):
        """Cancel on the backend, best effort; local state is cleared either way."""
        scan_id = self.active_scan_id
        if not scan_id:
            return
        self.driver.stop_processing()
        try:
            await self.api.cancel_scan(scan_id)
            if self.logger:
                self.logger.info(f"Scan {scan_id} cancelled")
        except ApiError as exc:
            if self.logger:
                self.logger.warn(f"Cancel request for {scan_id} failed: {exc}")
        finally:
            self._set_active(None)
            self.scan = None

    def resume(self):
        """Restart the chunk loop for a scan interrupted mid-crawl."""
        if not self.active_scan_id:
            return
        self.driver.reset()
        self._autostart = True
        self._maybe_start_phase1()

    def select_scan(self, scan_id: str):
        self._set_active(scan_id)
        self.scan = None

    def reset(self):
        self._set_active(None)
        self.scan = None
        self.start_error = None

    # ---------- credential prompt ----------

    async def submit_credentials(self, username: str, password: str,
                                 save_for_future: bool = True) -> bool:
        if not self.active_scan_id:
            return False
        return await self.credentials.submit_credentials(
            self.active_scan_id, username, password, save_for_future)

    async def auto_register(self) -> bool:
        if not self.active_scan_id:
            return False
        return await self.credentials.auto_register(self.active_scan_id)

    def skip_credentials(self):
        self.credentials.skip()

    # ── internal helpers ───────────────────────────────────────

    def _set_active(self, scan_id: Optional[str]):
        self.session.scan_id = scan_id
        self.driver.bind(scan_id)
        self.credentials.reset()
        self._autostart = False
        self._task = None

    def _maybe_start_phase1(self):
        st = self.driver.state
        status = self.scan.status if self.scan else None
        # only scans started or resumed here; anything else waits for resume()
        if (self._autostart and self.active_scan_id and status in (CRAWLING, DISCOVERING)
                and not st.is_processing and st.phase == "idle"):
            self._autostart = False
            self._task = self.driver.spawn("phase1")

    def _on_progress(self, progress: ChunkProgress):
        previous, self._driver_phase = self._driver_phase, progress.phase
        self.credentials.observe(progress)
        if progress.phase == "done" and previous in _HANDOFF:
            self._hand_off(_HANDOFF[previous])

    def _hand_off(self, status: str):
        """Move the cached scan on as soon as detect-niche or finalize returns.

        The status is set locally so the next render already shows the next
        panel; the full detail is fetched in the background.
        """
        scan_id = self.active_scan_id
        if not scan_id:
            return
        if self.scan and self.scan.id == scan_id:
            self.scan = replace(self.scan, status=status)
        else:
            self.scan = Scan(id=scan_id, status=status)
        self._detail_task = asyncio.create_task(self._reload_scan(scan_id))

    async def _reload_scan(self, scan_id: str):
        try:
            scan = await self.api.get_scan(scan_id)
        except ApiError as exc:
            if self.logger:
                self.logger.warn(f"Could not reload scan {scan_id}: {exc}")
            return
        if scan_id == self.active_scan_id:
            self.scan = scan
