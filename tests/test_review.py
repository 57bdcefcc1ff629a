import asyncio

import httpx
import pytest

from autotrack.core.api import ScanApi
from autotrack.core.models import Recommendation, ScanPage
from autotrack.core.review import (
    SITE_WIDE, RecommendationReview, filter_by_severity, group_by_route, pending_counts,
)

from conftest import CUSTOMER


def rec(rec_id, severity="RECOMMENDED", page_url=None, status="PENDING", **extra):
    data = {"id": rec_id, "scanId": "scan-1", "name": rec_id, "trackingType": "BUTTON_CLICK",
            "severity": severity, "status": status, "pageUrl": page_url}
    data.update(extra)
    return Recommendation.from_dict(data)


def page(url, template=None):
    return ScanPage(url=url, template_group=template)


SITE = "https://example.com"


def test_groups_ordered_by_site_wide_then_severity():
    pages = [page(f"{SITE}/product/{i}", "/product/:id") for i in range(1, 7)]
    pages += [page(f"{SITE}/about"), page(f"{SITE}/blog/1", "/blog/:slug")]
    recs = [
        rec("sw", "OPTIONAL"),
        rec("p1", "IMPORTANT", f"{SITE}/product/1"),
        rec("p2", "CRITICAL", f"{SITE}/product/2"),
        rec("a1", "CRITICAL", f"{SITE}/about"),
        rec("a2", "OPTIONAL", f"{SITE}/about"),
        rec("b1", "RECOMMENDED", f"{SITE}/blog/1"),
    ]

    groups = group_by_route(recs, pages)

    assert [g.route_path for g in groups] == [SITE_WIDE, "/about", "/product/1", "/blog/1"]
    product = groups[2]
    assert product.template_group == "/product/:id"
    assert product.page_count == 2
    assert [r.id for r in product.recommendations] == ["p1", "p2"]
    assert groups[3].template_group is None


def test_small_template_groups_stay_per_page():
    pages = [page(f"{SITE}/product/{i}", "/product/:id") for i in range(1, 5)]
    recs = [rec("p1", page_url=f"{SITE}/product/1"), rec("p2", page_url=f"{SITE}/product/2")]

    groups = group_by_route(recs, pages)

    assert [g.route_path for g in groups] == ["/product/1", "/product/2"]


def test_catch_all_pattern_is_site_wide():
    groups = group_by_route([rec("r1", page_url=f"{SITE}/cart", urlPattern=".*")])
    assert groups[0].is_site_wide


def test_hash_route_uses_fragment():
    groups = group_by_route([rec("r1", page_url="https://app.example.com/#/checkout")])
    assert groups[0].route_path == "/checkout"


def test_group_status_counts():
    recs = [
        rec("r1", "CRITICAL", f"{SITE}/a", status="CREATED"),
        rec("r2", "CRITICAL", f"{SITE}/a", status="FAILED"),
        rec("r3", "OPTIONAL", f"{SITE}/a"),
    ]

    (group,) = group_by_route(recs)

    assert (group.tracked_count, group.failed_count) == (1, 1)
    # created trackings no longer count towards severity
    assert group.counts["CRITICAL"] == 1
    assert group.pending_ids == ["r3"]


def test_filter_and_pending_counts():
    recs = [rec("a", "OPTIONAL"), rec("b", "CRITICAL"), rec("c", "CRITICAL", status="ACCEPTED")]

    assert [r.id for r in filter_by_severity(recs)] == ["b", "c", "a"]
    assert [r.id for r in filter_by_severity(recs, "OPTIONAL")] == ["a"]
    assert pending_counts(recs) == {"CRITICAL": 1, "IMPORTANT": 0, "RECOMMENDED": 0, "OPTIONAL": 1}


@pytest.mark.asyncio
async def test_accept_updates_row(api, backend):
    backend.route("GET", "/scans/scan-1/recommendations", [
        {"id": "r1", "severity": "CRITICAL", "status": "PENDING"}])
    review = RecommendationReview(api, "scan-1")
    await review.load()

    assert await review.accept("r1")

    assert review.recommendations[0].status == "ACCEPTED"
    assert review.accepting_id is None


@pytest.mark.asyncio
async def test_second_accept_refused_while_first_in_flight():
    started = asyncio.Event()
    release = asyncio.Event()
    paths = []

    async def handler(request):
        paths.append(request.url.path)
        started.set()
        await release.wait()
        return httpx.Response(200, json={"id": "r1", "severity": "CRITICAL", "status": "ACCEPTED"})

    api = ScanApi("https://app.test", CUSTOMER, transport=httpx.MockTransport(handler))
    review = RecommendationReview(api, "scan-1")
    review.recommendations = [rec("r1"), rec("r2")]

    first = asyncio.create_task(review.accept("r1"))
    await started.wait()
    assert review.accepting_id == "r1"
    assert not await review.accept("r2")

    release.set()
    assert await first
    assert len(paths) == 1
    assert review.recommendations[0].status == "ACCEPTED"
    assert review.recommendations[1].status == "PENDING"


@pytest.mark.asyncio
async def test_bulk_accept_uses_selection(api, backend):
    backend.route("GET", "/scans/scan-1/recommendations", [
        {"id": "r1", "status": "ACCEPTED"}, {"id": "r2", "status": "ACCEPTED"},
        {"id": "r3", "status": "REJECTED"}])
    review = RecommendationReview(api, "scan-1")
    review.recommendations = [rec("r1"), rec("r2"), rec("r3", status="REJECTED")]
    review.select_all_pending()

    accepted = await review.bulk_accept()

    assert sorted(accepted) == ["r1", "r2"]
    (body,) = backend.calls("POST", "/bulk-accept")
    assert sorted(body["recommendationIds"]) == ["r1", "r2"]
    assert review.selected_ids == set()
    assert not review.is_bulk_accepting


@pytest.mark.asyncio
async def test_bulk_accept_nothing_selected(api, backend):
    review = RecommendationReview(api, "scan-1")
    assert await review.bulk_accept() == []
    assert backend.requests == []


def test_selection_helpers(api):
    review = RecommendationReview(api, "scan-1")
    review.toggle("r1")
    review.select_route(["r2", "r3"], True)
    review.toggle("r1")
    review.select_route(["r3"], False)
    assert review.selected_ids == {"r2"}
    review.clear_selection()
    assert review.selected_ids == set()


@pytest.mark.asyncio
async def test_create_trackings_reports_result(api, backend):
    backend.route("POST", "/scans/scan-1/recommendations/bulk-create-trackings", {
        "created": 1, "failed": 1, "total": 2, "trackingIds": ["t1"], "errors": ["r2: no selector"]})
    backend.route("GET", "/scans/scan-1/recommendations", [])
    review = RecommendationReview(api, "scan-1")

    result = await review.create_trackings(["r1", "r2"])

    assert (result.created, result.failed, result.total) == (1, 1, 2)
    assert result.errors == ["r2: no selector"]
