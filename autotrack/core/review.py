"""Recommendation review for a completed scan.

Accept and reject are awaited one call at a time per kind: the row being
accepted is tracked in ``accepting_id``, the row being rejected in
``rejecting_id``. Bulk accept is always a single request.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set
from urllib.parse import urlsplit

from autotrack.core.api import ScanApi
from autotrack.core.models import BulkCreateResult, Recommendation, ScanPage, SEVERITIES

SITE_WIDE = "Site-wide"
TEMPLATE_MIN_PAGES = 5

SEVERITY_ORDER = {sev: i for i, sev in enumerate(SEVERITIES)}
# statuses that still need a decision or a fix; they count towards severity
_OPEN_STATUSES = ("PENDING", "REPAIR", "FAILED")


# ── Pure helpers ───────────────────────────────────────────────

def filter_by_severity(recs: Iterable[Recommendation],
                       severity: Optional[str] = None) -> List[Recommendation]:
    """Recommendations of one severity (or all), most severe first."""
    out = [r for r in recs if severity in (None, "ALL") or r.severity == severity]
    out.sort(key=lambda r: SEVERITY_ORDER.get(r.severity, len(SEVERITIES)))
    return out


def pending_counts(recs: Iterable[Recommendation]) -> Dict[str, int]:
    counts = {sev: 0 for sev in SEVERITIES}
    for r in recs:
        if r.status == "PENDING" and r.severity in counts:
            counts[r.severity] += 1
    return counts


@dataclass
class RouteGroup:
    route_path: str
    template_group: Optional[str] = None
    page_url: Optional[str] = None
    page_type: Optional[str] = None
    page_title: Optional[str] = None
    page_count: int = 1
    recommendations: List[Recommendation] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=lambda: {s: 0 for s in SEVERITIES})
    tracked_count: int = 0
    syncing_count: int = 0
    failed_count: int = 0
    repair_count: int = 0

    @property
    def is_site_wide(self) -> bool:
        return self.route_path == SITE_WIDE

    @property
    def worst_severity(self) -> int:
        for i, sev in enumerate(SEVERITIES):
            if self.counts[sev] > 0:
                return i
        return len(SEVERITIES) - 1

    @property
    def pending_ids(self) -> List[str]:
        return [r.id for r in self.recommendations if r.status == "PENDING"]


def _route_path(page_url: str) -> str:
    try:
        parts = urlsplit(page_url)
    except ValueError:
        return page_url
    if not parts.scheme or not parts.netloc:
        return page_url
    if parts.fragment.startswith("/"):
        return parts.fragment
    return parts.path or "/"


def group_by_route(recs: Iterable[Recommendation],
                   pages: Iterable[ScanPage] = ()) -> List[RouteGroup]:
    """
    Group recommendations per route for review.

    Site-wide recommendations (no page, or ``url_pattern == ".*"``) form one
    group. Page recommendations are grouped by the page's template group when
    at least TEMPLATE_MIN_PAGES scanned pages share it, else by page URL.
    Order: site-wide first, then worst open severity, then more
    recommendations first, then route path.
    """
    pages = list(pages)
    by_url = {p.url: p for p in pages}
    template_sizes: Dict[str, int] = {}
    for p in pages:
        if p.template_group:
            template_sizes[p.template_group] = template_sizes.get(p.template_group, 0) + 1

    groups: Dict[str, RouteGroup] = {}
    template_urls: Dict[str, Set[str]] = {}

    for rec in recs:
        if not rec.page_url or rec.url_pattern == ".*":
            key = "__site_wide__"
            group = groups.get(key) or RouteGroup(route_path=SITE_WIDE, page_url=None)
        else:
            page = by_url.get(rec.page_url)
            route = _route_path(rec.page_url)
            template = page.template_group if page else None
            if template and template_sizes.get(template, 0) >= TEMPLATE_MIN_PAGES:
                key = f"template:{template}"
                template_urls.setdefault(template, set()).add(rec.page_url)
                if route == "/":
                    route = template
            else:
                template = None
                key = rec.page_url
            group = groups.get(key) or RouteGroup(
                route_path=route, template_group=template, page_url=rec.page_url,
                page_type=page.page_type if page else None,
                page_title=page.title if page else None)
        groups[key] = group

        group.recommendations.append(rec)
        if rec.status == "CREATED":
            group.tracked_count += 1
        elif rec.status == "CREATING":
            group.syncing_count += 1
        elif rec.status == "FAILED":
            group.failed_count += 1
        elif rec.status == "REPAIR":
            group.repair_count += 1
        if rec.status in _OPEN_STATUSES and rec.severity in group.counts:
            group.counts[rec.severity] += 1

    for group in groups.values():
        if group.template_group:
            group.page_count = len(template_urls.get(group.template_group, ())) or 1

    return sorted(groups.values(), key=lambda g: (
        not g.is_site_wide, g.worst_severity, -len(g.recommendations), g.route_path))


# ── Review session ─────────────────────────────────────────────

class RecommendationReview:
    """
    Usage:
        review = RecommendationReview(api, scan.id, logger=log)
        await review.load()
        await review.accept(review.recommendations[0].id)
    """

    def __init__(self, api: ScanApi, scan_id: str, logger=None):
        self.api = api
        self.scan_id = scan_id
        self.logger = logger
        self.recommendations: List[Recommendation] = []
        self.filters: Optional[Dict] = None
        self.accepting_id: Optional[str] = None
        self.rejecting_id: Optional[str] = None
        self.is_bulk_accepting = False
        self.selected_ids: Set[str] = set()

    async def load(self, filters: Optional[Dict] = None) -> List[Recommendation]:
        if filters is not None:
            self.filters = filters
        self.recommendations = await self.api.list_recommendations(self.scan_id, self.filters)
        if self.logger:
            self.logger.debug(f"{len(self.recommendations)} recommendations for scan {self.scan_id}")
        return self.recommendations

    async def accept(self, recommendation_id: str) -> bool:
        if self.accepting_id is not None:
            if self.logger:
                self.logger.warn(f"Accept of {self.accepting_id} still running")
            return False
        self.accepting_id = recommendation_id
        try:
            updated = await self.api.accept_recommendation(self.scan_id, recommendation_id)
        finally:
            self.accepting_id = None
        self._apply(recommendation_id, updated, "ACCEPTED")
        if self.logger:
            self.logger.ok(f"Accepted {recommendation_id}")
        return True

    async def reject(self, recommendation_id: str) -> bool:
        if self.rejecting_id is not None:
            if self.logger:
                self.logger.warn(f"Reject of {self.rejecting_id} still running")
            return False
        self.rejecting_id = recommendation_id
        try:
            updated = await self.api.reject_recommendation(self.scan_id, recommendation_id)
        finally:
            self.rejecting_id = None
        self._apply(recommendation_id, updated, "REJECTED")
        if self.logger:
            self.logger.info(f"Rejected {recommendation_id}")
        return True

    async def bulk_accept(self, ids: Optional[Iterable[str]] = None) -> List[str]:
        ids = list(self.selected_ids if ids is None else ids)
        if not ids:
            return []
        self.is_bulk_accepting = True
        try:
            await self.api.bulk_accept(self.scan_id, ids)
        finally:
            self.is_bulk_accepting = False
        self.selected_ids.clear()
        if self.logger:
            self.logger.ok(f"Accepted {len(ids)} recommendations")
        await self.load()
        return ids

    async def create_trackings(self, ids: Iterable[str]) -> BulkCreateResult:
        ids = list(ids)
        result = await self.api.bulk_create_trackings(self.scan_id, ids)
        if self.logger:
            self.logger.info(f"Trackings created: {result.created}/{result.total}, "
                             f"failed: {result.failed}")
            for err in result.errors:
                self.logger.warn(err)
        await self.load()
        return result

    # ---------- selection ----------

    def toggle(self, recommendation_id: str):
        if recommendation_id in self.selected_ids:
            self.selected_ids.discard(recommendation_id)
        else:
            self.selected_ids.add(recommendation_id)

    def select_all_pending(self, recs: Optional[Iterable[Recommendation]] = None):
        recs = self.recommendations if recs is None else recs
        self.selected_ids = {r.id for r in recs if r.status == "PENDING"}

    def select_route(self, ids: Iterable[str], selected: bool):
        if selected:
            self.selected_ids.update(ids)
        else:
            self.selected_ids.difference_update(ids)

    def clear_selection(self):
        self.selected_ids.clear()

    # ---------- views ----------

    def pending_counts(self) -> Dict[str, int]:
        return pending_counts(self.recommendations)

    def groups(self, pages: Iterable[ScanPage] = ()) -> List[RouteGroup]:
        return group_by_route(self.recommendations, pages)

    def _apply(self, recommendation_id: str, updated: Optional[Recommendation], status: str):
        for i, rec in enumerate(self.recommendations):
            if rec.id == recommendation_id:
                if updated is None:
                    rec.status = status
                else:
                    self.recommendations[i] = updated
                break
