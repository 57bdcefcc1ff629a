import asyncio

import pytest

from autotrack.core.models import Credentials, Scan
from autotrack.core.orchestrator import AutoTrack, pick_active_scan
from autotrack.core.phase import DisplayPhase
from autotrack.reporters.progress import SmoothProgress

from conftest import chunk, scan


def test_pick_active_scan():
    history = [Scan.from_dict(scan("s3", "COMPLETED")), Scan.from_dict(scan("s2", "NICHE_DETECTED"))]
    assert pick_active_scan(history) == "s2"
    assert pick_active_scan(history[:1]) == "s3"
    assert pick_active_scan([Scan.from_dict(scan("s1", "FAILED"))]) is None
    assert pick_active_scan([]) is None


@pytest.mark.asyncio
async def test_discovery_runs_into_niche_confirmation(api, backend):
    backend.route("POST", "/scans", scan("scan-1", "CRAWLING"))
    backend.chunks["phase1"] += [
        chunk(pages=8), chunk(pages=8), chunk(pages=8),
        chunk(pages=4, phase_complete=True, niche="ecommerce"),
    ]
    tracker = AutoTrack(api)

    await tracker.start_scan("example.com")
    assert tracker.display is DisplayPhase.PHASE1
    await tracker.wait_for_driver()

    assert len(backend.calls("POST", "/process-chunk")) == 4
    assert backend.calls("POST", "/scans/scan-1/detect-niche") == [None]
    assert backend.calls("POST", "/scans")[0]["websiteUrl"] == "https://example.com"
    # no poll has run yet
    assert backend.calls("GET", "/scans") == []
    assert tracker.display is DisplayPhase.NICHE
    assert tracker.niche_preselection == "ecommerce"


@pytest.mark.asyncio
async def test_backend_niche_wins_preselection(api, backend):
    backend.route("GET", "/scans", [scan("scan-1", "NICHE_DETECTED")])
    backend.route("GET", "/scans/scan-1", scan("scan-1", "NICHE_DETECTED", detectedNiche="saas"))
    tracker = AutoTrack(api)

    await tracker.refresh()

    assert tracker.niche_preselection == "saas"


@pytest.mark.asyncio
async def test_login_wall_skip_keeps_crawling(api, backend):
    backend.route("POST", "/scans", scan("scan-1", "CRAWLING"))
    backend.chunks["phase1"] += [
        chunk(pages=8, total=50),
        chunk(pages=4, total=50, login=True, login_url="https://example.com/login"),
        chunk(pages=8, total=50),
        chunk(pages=8, total=50, has_more=False),
    ]
    tracker = AutoTrack(api)
    seen = {}

    def on_chunk(body):
        if len(backend.calls("POST", "/process-chunk")) == 3:
            st = tracker.progress
            seen["prompt"] = tracker.credentials.show_prompt
            seen["at"] = (st.pages_processed, st.total_pages)
            tracker.skip_credentials()

    backend.on_chunk = on_chunk
    await tracker.start_scan("https://example.com")
    await tracker.wait_for_driver()

    assert seen == {"prompt": True, "at": (12, 50)}
    bar = SmoothProgress()
    bar.update(12, 50)
    assert bar.target == 24

    bodies = backend.calls("POST", "/process-chunk")
    assert len(bodies) == 4
    assert all("credentials" not in b for b in bodies)
    assert not tracker.credentials.show_prompt
    assert tracker.progress.login_detected


@pytest.mark.asyncio
async def test_credentials_set_mid_crawl_reach_next_chunk(api, backend):
    backend.route("POST", "/scans", scan("scan-1", "CRAWLING"))
    backend.chunks["phase1"] += [chunk(login=True), chunk(), chunk(has_more=False)]
    tracker = AutoTrack(api)

    def on_chunk(body):
        if len(backend.calls("POST", "/process-chunk")) == 2:
            tracker.driver.set_credentials(Credentials("bob", "pw"))

    backend.on_chunk = on_chunk
    await tracker.start_scan("https://example.com")
    await tracker.wait_for_driver()

    bodies = backend.calls("POST", "/process-chunk")
    assert "credentials" not in bodies[1]
    assert bodies[2]["credentials"] == {"username": "bob", "password": "pw"}


@pytest.mark.asyncio
async def test_invalid_url_never_reaches_backend(api, backend):
    tracker = AutoTrack(api)

    assert await tracker.start_scan("ftp://example.com") is None

    assert tracker.start_error == "URL must use http or https"
    assert backend.requests == []


@pytest.mark.asyncio
async def test_failed_start_keeps_current_scan(api, backend):
    backend.route("POST", "/scans", (409, {"message": "A scan is already running"}))
    tracker = AutoTrack(api)
    tracker.select_scan("scan-1")

    assert await tracker.start_scan("https://example.com") is None

    assert tracker.start_error == "A scan is already running"
    assert tracker.active_scan_id == "scan-1"


@pytest.mark.asyncio
async def test_reload_shows_resume_banner(api, backend):
    backend.route("GET", "/scans", [scan("scan-2", "COMPLETED"), scan("scan-1", "CRAWLING")])
    backend.route("GET", "/scans/scan-1", scan("scan-1", "CRAWLING"))
    backend.chunks["phase1"].append(chunk(has_more=False))
    tracker = AutoTrack(api)

    await tracker.refresh()

    assert tracker.active_scan_id == "scan-1"
    assert tracker.display is DisplayPhase.RESUME
    assert [s.id for s in tracker.past_scans] == ["scan-2"]
    assert backend.calls("POST", "/process-chunk") == []

    tracker.resume()
    assert tracker.display is DisplayPhase.PHASE1
    await tracker.wait_for_driver()
    assert len(backend.calls("POST", "/process-chunk")) == 1


@pytest.mark.asyncio
async def test_auto_select_only_on_first_load(api, backend):
    backend.route("GET", "/scans", [scan("scan-1", "CRAWLING")])
    backend.route("GET", "/scans/scan-1", scan("scan-1", "CRAWLING"))
    tracker = AutoTrack(api)

    await tracker.refresh()
    tracker.reset()
    await tracker.refresh()

    assert tracker.active_scan_id is None
    assert tracker.display is DisplayPhase.IDLE


@pytest.mark.asyncio
async def test_cancel_clears_even_when_backend_fails(api, backend):
    backend.route("POST", "/scans/scan-1/cancel", (500, {"message": "boom"}))
    tracker = AutoTrack(api)
    tracker.select_scan("scan-1")

    await tracker.cancel_scan()

    assert backend.calls("POST", "/scans/scan-1/cancel") == [None]
    assert tracker.active_scan_id is None
    assert tracker.display is DisplayPhase.IDLE


@pytest.mark.asyncio
async def test_confirm_niche_runs_phase2(api, backend):
    backend.chunks["phase2"] += [{"pagesProcessed": 5, "hasMore": False}]
    tracker = AutoTrack(api)
    tracker.select_scan("scan-1")

    assert await tracker.confirm_niche("ecommerce")
    assert tracker.display is DisplayPhase.PHASE2
    await tracker.wait_for_driver()

    assert backend.calls("POST", "/confirm-niche") == [{"niche": "ecommerce"}]
    assert backend.calls("POST", "/scans/scan-1/finalize") == [None]
    assert tracker.progress.phase == "done"
    assert tracker.display is DisplayPhase.COMPLETED


@pytest.mark.asyncio
async def test_chunk_error_shows_failed_panel(api, backend):
    backend.route("POST", "/scans", scan("scan-1", "CRAWLING"))
    backend.chunks["phase1"].append((502, {"message": "crawler unavailable"}))
    tracker = AutoTrack(api)

    await tracker.start_scan("https://example.com")
    await tracker.wait_for_driver()

    assert tracker.display is DisplayPhase.FAILED
    assert tracker.failure_message == "crawler unavailable"


@pytest.mark.asyncio
async def test_detail_reloaded_after_detect_niche(api, backend):
    backend.route("POST", "/scans", scan("scan-1", "CRAWLING"))
    backend.route("GET", "/scans/scan-1", scan(
        "scan-1", "NICHE_DETECTED", detectedNiche="saas", nicheConfidence=0.9))
    backend.chunks["phase1"].append(chunk(has_more=False, niche="ecommerce"))
    tracker = AutoTrack(api)

    await tracker.start_scan("https://example.com")
    await tracker.wait_for_driver()

    assert tracker.scan.niche_confidence == 0.9
    assert tracker.niche_preselection == "saas"
    assert tracker.display is DisplayPhase.NICHE


@pytest.mark.asyncio
async def test_switching_scan_before_loop_starts_sends_nothing(api, backend):
    backend.route("POST", "/scans", scan("scan-1", "CRAWLING"))
    backend.chunks["phase1"].append(chunk(has_more=False))
    tracker = AutoTrack(api)

    await tracker.start_scan("https://example.com")
    tracker.select_scan("scan-old")
    for _ in range(20):
        await asyncio.sleep(0)

    assert backend.calls("POST", "/process-chunk") == []
    assert not tracker.progress.is_processing
