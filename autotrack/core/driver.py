"""Chunked scan driver.

Advances a scan through its two backend phases by calling ``process-chunk``
repeatedly until the phase reports exhaustion:

    phase 1   broad discovery crawl (chunks of 8)  -> detect-niche
    phase 2   deep crawl / element extraction (5)  -> finalize

Chunks are strictly sequential. Every loop runs under a generation number;
``stop_processing()`` and ``reset()`` bump it, so a response that lands after
either call is dropped instead of applied.
"""

import asyncio
from dataclasses import replace
from typing import Callable, Optional

from autotrack.core.api import ApiError, ScanApi
from autotrack.core.models import ChunkProgress, Credentials

PHASE1_CHUNK_SIZE = 8
PHASE2_CHUNK_SIZE = 5


class ChunkedScanDriver:
    """
    Usage:
        driver = ChunkedScanDriver(api, scan_id, logger=log)
        await driver.start_phase1()
        ...
        await driver.start_phase2()
    """

    def __init__(self, api: ScanApi, scan_id: Optional[str] = None, logger=None,
                 on_update: Optional[Callable[[ChunkProgress], None]] = None):
        self.api = api
        self.scan_id = scan_id
        self.logger = logger
        self.on_update = on_update
        self.state = ChunkProgress()
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    # ── public API ──────────────────────────────────────────────

    def bind(self, scan_id: Optional[str]):
        """Point the driver at another scan, dropping all local state."""
        self.reset()
        self.scan_id = scan_id

    def set_credentials(self, credentials: Optional[Credentials]):
        self._update(credentials=credentials)

    def stop_processing(self):
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def reset(self):
        self.stop_processing()
        self.state = ChunkProgress()
        self._notify()

    def spawn(self, phase: str = "phase1", resume: bool = False) -> Optional[asyncio.Task]:
        """Run a phase loop in the background, showing it as running right away.

        The loop is tied to the generation and scan bound now; a reset or
        rebind before its first step cancels it.
        """
        if not self.scan_id:
            return None
        self.stop_processing()
        gen, scan_id = self._generation, self.scan_id
        self._update(is_processing=True, phase=phase, error=None)
        if phase == "phase2":
            coro = self._run_phase2(gen, scan_id)
        else:
            coro = self._run_phase1(gen, scan_id, resume)
        self._task = asyncio.create_task(coro)
        return self._task

    async def start_phase1(self, resume: bool = False):
        if self.scan_id:
            await self._run_phase1(self._begin(), self.scan_id, resume)

    async def start_phase2(self):
        if self.scan_id:
            await self._run_phase2(self._begin(), self.scan_id)

    # ── phase loops ────────────────────────────────────────────

    async def _run_phase1(self, gen: int, scan_id: str, resume: bool):
        if gen != self._generation or scan_id != self.scan_id:
            return
        prev = self.state
        self._update(
            is_processing=True, phase="phase1", error=None,
            pages_processed=prev.pages_processed if resume else 0,
            accumulated_pages=list(prev.accumulated_pages) if resume else [],
            obstacles_dismissed=prev.obstacles_dismissed if resume else 0,
            total_interactions=prev.total_interactions if resume else 0,
            authenticated_pages_count=prev.authenticated_pages_count if resume else 0,
        )
        if self.logger:
            verb = "Resuming" if resume else "Starting"
            self.logger.info(f"{verb} discovery crawl for scan {scan_id}")

        try:
            has_more = True
            while has_more:
                result = await self.api.process_chunk(
                    scan_id, "phase1", PHASE1_CHUNK_SIZE,
                    credentials=self.state.credentials)
                if gen != self._generation:
                    return
                has_more = result.has_more and not result.phase_complete

                st = self.state
                self._update(
                    pages_processed=st.pages_processed + result.pages_processed,
                    total_pages=result.discovery.total_urls_discovered,
                    discovery=result.discovery,
                    login_detected=st.login_detected or result.login_detected,
                    login_url=result.login_url or st.login_url,
                    accumulated_pages=list(result.new_pages) + st.accumulated_pages,
                    obstacles_dismissed=st.obstacles_dismissed + result.obstacles_dismissed,
                    total_interactions=st.total_interactions + result.total_interactions,
                    authenticated_pages_count=(st.authenticated_pages_count
                                               + result.authenticated_pages_count),
                    detected_niche=result.detected_niche or st.detected_niche,
                )
                if self.logger:
                    self.logger.debug(
                        f"Chunk: +{result.pages_processed} pages "
                        f"({self.state.pages_processed}/{self.state.total_pages or '?'})")
                    if result.login_detected:
                        self.logger.warn(f"Login page detected: {result.login_url or '?'}")

            self._update(phase="detecting_niche")
            await self.api.detect_niche(scan_id)
            if gen != self._generation:
                return
            self._update(is_processing=False, phase="done")
            if self.logger:
                self.logger.ok(f"Discovery finished: {self.state.pages_processed} pages")
        except ApiError as exc:
            if gen != self._generation:
                return
            self._fail(exc.message or "Scan failed")

    async def _run_phase2(self, gen: int, scan_id: str):
        if gen != self._generation or scan_id != self.scan_id:
            return
        self._update(is_processing=True, phase="phase2", pages_processed=0, error=None)
        if self.logger:
            self.logger.info(f"Starting deep crawl for scan {scan_id}")

        try:
            has_more = True
            while has_more:
                result = await self.api.process_chunk(
                    scan_id, "phase2", PHASE2_CHUNK_SIZE,
                    credentials=self.state.credentials)
                if gen != self._generation:
                    return
                has_more = result.has_more
                self._update(pages_processed=self.state.pages_processed + result.pages_processed)
                if self.logger:
                    self.logger.debug(f"Deep chunk: +{result.pages_processed} pages, "
                                      f"+{result.new_recommendations} recommendations")

            self._update(phase="finalizing")
            await self.api.finalize(scan_id)
            if gen != self._generation:
                return
            self._update(is_processing=False, phase="done")
            if self.logger:
                self.logger.ok("Analysis finished")
        except ApiError as exc:
            if gen != self._generation:
                return
            self._fail(exc.message or "Analysis failed")

    # ── internal helpers ───────────────────────────────────────

    def _begin(self) -> int:
        self._generation += 1
        self._task = asyncio.current_task()
        return self._generation

    def _fail(self, message: str):
        self._update(is_processing=False, error=message)
        if self.logger:
            self.logger.fail(f"Scan {self.scan_id}: {message}")

    def _update(self, **changes):
        self.state = replace(self.state, **changes)
        self._notify()

    def _notify(self):
        if self.on_update:
            self.on_update(self.state)
