"""Shared data models for the AutoTrack client.

Payloads arrive in the backend's camelCase shape; every model exposes a
``from_dict`` that tolerates missing keys so scan-history rows and full scan
details can share one type.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ── Wire constants ─────────────────────────────────────────────

QUEUED = "QUEUED"
DISCOVERING = "DISCOVERING"
CRAWLING = "CRAWLING"
NICHE_DETECTED = "NICHE_DETECTED"
AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
DEEP_CRAWLING = "DEEP_CRAWLING"
ANALYZING = "ANALYZING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
CANCELLED = "CANCELLED"

ACTIVE_STATUSES = (QUEUED, DISCOVERING, CRAWLING, NICHE_DETECTED,
                   AWAITING_CONFIRMATION, DEEP_CRAWLING, ANALYZING)
TERMINAL_STATUSES = (COMPLETED, FAILED, CANCELLED)

SEVERITIES = ("CRITICAL", "IMPORTANT", "RECOMMENDED", "OPTIONAL")

AVAILABLE_NICHES = [
    ("e-commerce", "E-Commerce"),
    ("saas", "SaaS"),
    ("lead-generation", "Lead Generation"),
    ("content", "Content / Blog"),
    ("non-profit", "Non-Profit"),
    ("marketplace", "Marketplace"),
    ("education", "Education"),
    ("healthcare", "Healthcare"),
    ("real-estate", "Real Estate"),
    ("travel", "Travel"),
    ("finance", "Finance"),
    ("food-delivery", "Food & Delivery"),
    ("entertainment", "Entertainment"),
    ("other", "Other"),
]


def niche_label(value: Optional[str]) -> str:
    for key, label in AVAILABLE_NICHES:
        if key == value:
            return label
    return value or "Other"


def _upper(value: Optional[str]) -> str:
    return (value or "").upper()


# ── Scan ───────────────────────────────────────────────────────

@dataclass
class ScanPage:
    """A crawled page as reported by the backend."""
    url: str
    title: Optional[str] = None
    page_type: Optional[str] = None
    has_form: bool = False
    has_cta: bool = False
    template_group: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanPage":
        return cls(
            url=data.get("url", ""),
            title=data.get("title"),
            page_type=data.get("pageType"),
            has_form=bool(data.get("hasForm")),
            has_cta=bool(data.get("hasCTA")),
            template_group=data.get("templateGroup"),
        )


@dataclass
class Scan:
    """One AutoTrack scan (detail or history row)."""
    id: str
    status: str
    website_url: str = ""
    detected_niche: Optional[str] = None
    confirmed_niche: Optional[str] = None
    niche_confidence: Optional[float] = None
    niche_sub_category: Optional[str] = None
    tracking_readiness_score: Optional[int] = None
    readiness_narrative: Optional[str] = None
    total_pages_scanned: Optional[int] = None
    total_recommendations: Optional[int] = None
    recommendation_counts: Dict[str, int] = field(default_factory=dict)
    error_message: Optional[str] = None
    login_detected: bool = False
    login_url: Optional[str] = None
    pages: List[ScanPage] = field(default_factory=list)
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scan":
        return cls(
            id=data["id"],
            status=_upper(data.get("status")),
            website_url=data.get("websiteUrl", ""),
            detected_niche=data.get("detectedNiche"),
            confirmed_niche=data.get("confirmedNiche"),
            niche_confidence=data.get("nicheConfidence"),
            niche_sub_category=data.get("nicheSubCategory"),
            tracking_readiness_score=data.get("trackingReadinessScore"),
            readiness_narrative=data.get("readinessNarrative"),
            total_pages_scanned=data.get("totalPagesScanned"),
            total_recommendations=data.get("totalRecommendations"),
            recommendation_counts=dict(data.get("recommendationCounts") or {}),
            error_message=data.get("errorMessage"),
            login_detected=bool(data.get("loginDetected")),
            login_url=data.get("loginUrl"),
            pages=[ScanPage.from_dict(p) for p in data.get("pages") or []],
            created_at=data.get("createdAt"),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def niche(self) -> Optional[str]:
        return self.confirmed_niche or self.detected_niche


# ── Chunk processing ───────────────────────────────────────────

@dataclass
class LiveDiscovery:
    """Running discovery statistics accumulated by the phase-1 crawl."""
    technologies: Dict[str, Any] = field(default_factory=dict)
    priority_elements: Dict[str, Any] = field(default_factory=dict)
    page_types: Dict[str, int] = field(default_factory=dict)
    url_patterns: List[str] = field(default_factory=list)
    sitemap_found: bool = False
    robots_found: bool = False
    total_urls_discovered: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LiveDiscovery":
        data = data or {}
        return cls(
            technologies=dict(data.get("technologies") or {}),
            priority_elements=dict(data.get("priorityElements") or {}),
            page_types=dict(data.get("pageTypes") or {}),
            url_patterns=list(data.get("urlPatterns") or []),
            sitemap_found=bool(data.get("sitemapFound")),
            robots_found=bool(data.get("robotsFound")),
            total_urls_discovered=int(data.get("totalUrlsDiscovered") or 0),
        )


@dataclass
class ChunkResult:
    """Response of one phase-1 ``process-chunk`` call."""
    pages_processed: int
    has_more: bool
    discovery: LiveDiscovery
    new_pages: List[ScanPage] = field(default_factory=list)
    login_detected: bool = False
    login_url: Optional[str] = None
    phase_complete: bool = False
    detected_niche: Optional[str] = None
    obstacles_dismissed: int = 0
    total_interactions: int = 0
    authenticated_pages_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkResult":
        return cls(
            pages_processed=int(data.get("pagesProcessed") or 0),
            has_more=bool(data.get("hasMore")),
            discovery=LiveDiscovery.from_dict(data.get("discovery")),
            new_pages=[ScanPage.from_dict(p) for p in data.get("newPages") or []],
            login_detected=bool(data.get("loginDetected")),
            login_url=data.get("loginUrl"),
            phase_complete=bool(data.get("phaseComplete")),
            detected_niche=data.get("detectedNiche"),
            obstacles_dismissed=int(data.get("obstaclesDismissed") or 0),
            total_interactions=int(data.get("totalInteractions") or 0),
            authenticated_pages_count=int(data.get("authenticatedPagesCount") or 0),
        )


@dataclass
class Phase2ChunkResult:
    """Response of one phase-2 ``process-chunk`` call."""
    pages_processed: int
    has_more: bool
    new_recommendations: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Phase2ChunkResult":
        return cls(
            pages_processed=int(data.get("pagesProcessed") or 0),
            has_more=bool(data.get("hasMore")),
            new_recommendations=int(data.get("newRecommendations") or 0),
        )


@dataclass
class Credentials:
    username: str
    password: str = field(repr=False)

    def to_dict(self) -> Dict[str, str]:
        return {"username": self.username, "password": self.password}


@dataclass
class ChunkProgress:
    """Client-side aggregate rebuilt from chunk responses. Never persisted."""
    is_processing: bool = False
    phase: str = "idle"    # idle, phase1, detecting_niche, phase2, finalizing, done
    pages_processed: int = 0
    total_pages: int = 0
    discovery: Optional[LiveDiscovery] = None
    error: Optional[str] = None
    login_detected: bool = False
    login_url: Optional[str] = None
    accumulated_pages: List[ScanPage] = field(default_factory=list)  # newest first
    obstacles_dismissed: int = 0
    total_interactions: int = 0
    authenticated_pages_count: int = 0
    detected_niche: Optional[str] = None
    credentials: Optional[Credentials] = None


# ── Recommendations ────────────────────────────────────────────

@dataclass
class Recommendation:
    """A suggested tracking definition produced by a scan."""
    id: str
    scan_id: str
    name: str
    tracking_type: str
    severity: str          # CRITICAL, IMPORTANT, RECOMMENDED, OPTIONAL
    status: str = "PENDING"  # PENDING, ACCEPTED, CREATING, CREATED, FAILED, REPAIR, REJECTED
    description: Optional[str] = None
    selector: Optional[str] = None
    selector_confidence: Optional[float] = None
    url_pattern: Optional[str] = None
    page_url: Optional[str] = None
    funnel_stage: Optional[str] = None
    suggested_ga4_event_name: Optional[str] = None
    tracking_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recommendation":
        return cls(
            id=data["id"],
            scan_id=data.get("scanId", ""),
            name=data.get("name", ""),
            tracking_type=data.get("trackingType", ""),
            severity=_upper(data.get("severity")) or "OPTIONAL",
            status=_upper(data.get("status")) or "PENDING",
            description=data.get("description"),
            selector=data.get("selector"),
            selector_confidence=data.get("selectorConfidence"),
            url_pattern=data.get("urlPattern"),
            page_url=data.get("pageUrl"),
            funnel_stage=data.get("funnelStage"),
            suggested_ga4_event_name=data.get("suggestedGA4EventName"),
            tracking_id=data.get("trackingId"),
        )

    def __str__(self):
        where = self.page_url or "site-wide"
        return (f"[{self.severity}][{self.status}] {self.name} "
                f"({self.tracking_type}) @ {where}")


@dataclass
class AutoRegisterResult:
    success: bool
    credentials: Optional[Credentials] = None
    error: Optional[str] = None
    needs_email_verification: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoRegisterResult":
        creds = data.get("credentials")
        return cls(
            success=bool(data.get("success")),
            credentials=Credentials(creds["email"], creds["password"]) if creds else None,
            error=data.get("error"),
            needs_email_verification=bool(data.get("needsEmailVerification")),
        )


@dataclass
class SiteCredential:
    """A credential saved server-side for a domain. Username is redacted."""
    id: str
    domain: str
    username: str
    login_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SiteCredential":
        return cls(
            id=data["id"],
            domain=data.get("domain", ""),
            username=data.get("username", ""),
            login_url=data.get("loginUrl"),
        )


@dataclass
class BulkCreateResult:
    created: int = 0
    failed: int = 0
    tracking_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    total: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BulkCreateResult":
        return cls(
            created=int(data.get("created") or 0),
            failed=int(data.get("failed") or 0),
            tracking_ids=list(data.get("trackingIds") or []),
            errors=list(data.get("errors") or []),
            total=int(data.get("total") or 0),
        )
