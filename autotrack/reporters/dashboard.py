"""Terminal panels for each display phase."""

from typing import List, Optional

from colorama import Fore, Style

from autotrack.core.models import Recommendation, Scan, niche_label
from autotrack.core.phase import DisplayPhase
from autotrack.core.review import RouteGroup, group_by_route, pending_counts
from autotrack.reporters.console import SEVERITY_COLORS, Log
from autotrack.reporters.progress import SmoothProgress


class ConsoleRenderer:
    def __init__(self, log: Log):
        self.log = log
        self.progress = SmoothProgress()
        self._last_key = None

    def render(self, tracker) -> None:
        """Print the panel for the tracker's current phase, once per change."""
        display = tracker.display
        st = tracker.progress
        key = (display, st.phase, st.pages_processed, st.total_pages,
               tracker.credentials.show_prompt, tracker.scan.status if tracker.scan else None)
        if key == self._last_key:
            return
        self._last_key = key

        if display is DisplayPhase.PHASE1:
            self.discovery(tracker)
        elif display is DisplayPhase.PHASE2:
            step = ("Generating recommendations..." if st.phase == "finalizing"
                    else "Extracting interactive elements...")
            self.log.info(f"Deep crawl: {st.pages_processed} pages. {step}")
        elif display is DisplayPhase.NICHE:
            self.niche(tracker.scan, tracker.niche_preselection)
        elif display is DisplayPhase.RESUME:
            self.log.warn("This scan was interrupted. Resume to continue processing.")
        elif display is DisplayPhase.FAILED:
            self.log.fail(f"Scan Failed: {tracker.failure_message}")
        elif display is DisplayPhase.CANCELLED:
            self.log.warn("Scan cancelled")
        elif display is DisplayPhase.COMPLETED and tracker.scan:
            self.summary(tracker.scan)
        elif display is DisplayPhase.WAITING and tracker.scan:
            self.log.info(f"Scan {tracker.scan.id}: {tracker.scan.status.lower()}...")

        if tracker.start_error:
            self.log.fail(tracker.start_error)

    def discovery(self, tracker) -> None:
        st = tracker.progress
        self.progress.update(st.pages_processed, st.total_pages)
        self.progress.step()
        label = "Detecting niche" if st.phase == "detecting_niche" else "Discovering"
        self.log.info(f"{label}: {self.progress.bar()}")
        for page in st.accumulated_pages[:3]:
            self.log.debug(f"  {page.url} ({page.page_type or 'page'})")
        if st.discovery:
            tech = {k: v for k, v in st.discovery.technologies.items() if v}
            if tech:
                self.log.debug(f"  technologies: {tech}")
        if st.obstacles_dismissed or st.total_interactions:
            self.log.debug(f"  obstacles dismissed: {st.obstacles_dismissed}, "
                           f"interactions: {st.total_interactions}, "
                           f"authenticated pages: {st.authenticated_pages_count}")

    def niche(self, scan: Optional[Scan], preselected: str) -> None:
        confidence = round((scan.niche_confidence or 0) * 100) if scan else 0
        self.log.ok(f"Niche Detected: {niche_label(preselected)} ({confidence}% confidence)")
        if scan and scan.niche_sub_category:
            self.log.info(f"  sub-category: {scan.niche_sub_category}")

    def summary(self, scan: Scan) -> None:
        counts = scan.recommendation_counts
        self.log.ok(f"Scan {scan.id} completed for {scan.website_url}")
        if scan.tracking_readiness_score is not None:
            self.log.info(f"  readiness score: {scan.tracking_readiness_score}/100")
            if scan.readiness_narrative:
                self.log.info(f"  {scan.readiness_narrative}")
        self.log.info(f"  niche: {niche_label(scan.niche) if scan.niche else '-'}  "
                      f"pages: {scan.total_pages_scanned or 0}  "
                      f"recommendations: {scan.total_recommendations or 0}")
        if counts:
            self.log.info("  " + "  ".join(
                f"{SEVERITY_COLORS.get(sev.upper(), '')}{sev}: {n}{Style.RESET_ALL}"
                for sev, n in counts.items()))

    def history(self, scans: List[Scan], active_id: Optional[str] = None) -> None:
        for scan in scans:
            mark = "*" if scan.id == active_id else " "
            niche = niche_label(scan.detected_niche) if scan.detected_niche else "-"
            print(f" {mark} {scan.id}  {scan.status:<21} {scan.website_url}  "
                  f"{Style.DIM}niche={niche} pages={scan.total_pages_scanned or 0} "
                  f"recs={scan.total_recommendations or 0}{Style.RESET_ALL}")

    def recommendations(self, recs: List[Recommendation], pages=()) -> None:
        counts = pending_counts(recs)
        self.log.info("Pending: " + ", ".join(f"{k.lower()} {v}" for k, v in counts.items()))
        for group in group_by_route(recs, pages):
            self._group(group)

    def _group(self, group: RouteGroup) -> None:
        extra = f" ({group.page_count} pages)" if group.template_group else ""
        status = []
        if group.tracked_count:
            status.append(f"{group.tracked_count} tracked")
        if group.syncing_count:
            status.append(f"{group.syncing_count} syncing")
        if group.failed_count:
            status.append(f"{group.failed_count} failed")
        if group.repair_count:
            status.append(f"{group.repair_count} repair")
        tail = f" {Style.DIM}[{', '.join(status)}]{Style.RESET_ALL}" if status else ""
        print(f"{Fore.CYAN}{group.route_path}{Style.RESET_ALL}{extra}{tail}")
        for rec in group.recommendations:
            self.log.recommendation(rec)
