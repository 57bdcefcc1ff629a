import argparse
import asyncio
import getpass
import sys

from autotrack.core.api import ApiError, ScanApi
from autotrack.core.config import Settings
from autotrack.core.models import AVAILABLE_NICHES, SEVERITIES
from autotrack.core.orchestrator import AutoTrack
from autotrack.core.phase import DisplayPhase
from autotrack.core.review import RecommendationReview
from autotrack.reporters.console import Log
from autotrack.reporters.dashboard import ConsoleRenderer


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="autotrack",
                                description="AutoTrack site-scan client")
    p.add_argument("--api-url", help="API base URL (env AUTOTRACK_API_URL)")
    p.add_argument("--token", help="API bearer token (env AUTOTRACK_API_TOKEN)")
    p.add_argument("--customer", help="Customer id (env AUTOTRACK_CUSTOMER_ID)")
    p.add_argument("--proxy", help="Proxy (e.g. http://127.0.0.1:8080)")
    p.add_argument("-v", "--verbose", action="count", default=1, help="-v, -vv")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("scan", help="Start a scan and follow it")
    s.add_argument("url", nargs="?", help="Website URL (defaults to the customer's site)")
    s.add_argument("--max-pages", type=int)
    s.add_argument("--max-depth", type=int)

    s = sub.add_parser("watch", help="Follow an existing scan")
    s.add_argument("scan_id", nargs="?", help="Defaults to the latest active scan")

    sub.add_parser("history", help="List past scans")

    s = sub.add_parser("cancel", help="Cancel a scan")
    s.add_argument("scan_id")

    s = sub.add_parser("recs", help="List recommendations of a scan")
    s.add_argument("scan_id")
    s.add_argument("--severity", choices=SEVERITIES)
    s.add_argument("--status")

    for name in ("accept", "reject"):
        s = sub.add_parser(name, help=f"{name.capitalize()} recommendations one by one")
        s.add_argument("scan_id")
        s.add_argument("ids", nargs="+")

    s = sub.add_parser("bulk-accept", help="Accept recommendations in one request")
    s.add_argument("scan_id")
    s.add_argument("ids", nargs="*", help="Defaults to every pending recommendation")

    s = sub.add_parser("create-trackings", help="Create trackings from recommendations")
    s.add_argument("scan_id")
    s.add_argument("ids", nargs="+")
    return p


# ── interactive pieces ─────────────────────────────────────────

async def ask(prompt: str) -> str:
    # input() blocks; keep the event loop (and the chunk loop) running
    return (await asyncio.to_thread(input, prompt)).strip()


async def handle_login_wall(tracker: AutoTrack, log: Log):
    flow = tracker.credentials
    where = f" at {flow.login_url}" if flow.login_url else ""
    log.warn(f"Login Page Detected{where}. Choose how to proceed:")
    while flow.show_prompt:
        choice = (await ask("  [c] I have credentials  [a] auto-create test account  "
                            "[s] skip protected pages > ")).lower()
        if choice.startswith("c"):
            username = flow.username or await ask("  username: ")
            password = await asyncio.to_thread(getpass.getpass, "  password: ")
            if not await tracker.submit_credentials(username, password):
                log.fail(flow.login_error or "Login failed")
                flow.retry()
        elif choice.startswith("a"):
            if not await tracker.auto_register():
                log.fail(flow.auto_register_error or "Auto-registration failed")
                flow.back_to_options()
            else:
                flow.show_prompt = False
        elif choice.startswith("s"):
            tracker.skip_credentials()


async def handle_niche(tracker: AutoTrack, log: Log) -> bool:
    default = tracker.niche_preselection
    values = [v for v, _ in AVAILABLE_NICHES]
    log.info("Available niches: " + ", ".join(values))
    answer = await ask(f"  Confirm niche [{default}] (or 'cancel') > ") or default
    if answer == "cancel":
        await tracker.cancel_scan()
        return False
    if answer not in values:
        log.warn(f"Unknown niche {answer!r}, using {default}")
        answer = default
    return await tracker.confirm_niche(answer)


async def follow(tracker: AutoTrack, renderer: ConsoleRenderer, log: Log):
    pending = {"login": None}

    async def render(t: AutoTrack) -> bool:
        renderer.render(t)
        display = t.display
        if t.credentials.show_prompt and pending["login"] is None:
            pending["login"] = asyncio.create_task(handle_login_wall(t, log))
        if display is DisplayPhase.NICHE:
            login = pending["login"]
            if login is not None and not login.done():
                await login
            return await handle_niche(t, log)
        if display is DisplayPhase.RESUME:
            answer = (await ask("  Resume scan? [Y/n/cancel] > ")).lower()
            if answer == "cancel":
                await t.cancel_scan()
                return False
            if answer.startswith("n"):
                return False
            t.resume()
            return True
        if display is DisplayPhase.COMPLETED and t.scan:
            review = RecommendationReview(t.api, t.scan.id, logger=log)
            await review.load()
            renderer.recommendations(review.recommendations, t.scan.pages)
            return False
        return display not in (DisplayPhase.IDLE, DisplayPhase.FAILED, DisplayPhase.CANCELLED)

    try:
        await tracker.watch(render)
    finally:
        task = pending["login"]
        if task is not None and not task.done():
            task.cancel()
        await tracker.wait_for_driver()


# ── commands ───────────────────────────────────────────────────

async def run(args, settings: Settings) -> int:
    log = Log(verbose=args.verbose)
    renderer = ConsoleRenderer(log)
    async with ScanApi(settings.api_url, settings.customer_id, token=settings.api_token,
                       proxy=settings.proxy, timeout=settings.timeout,
                       verify=settings.verify_tls, logger=log) as api:
        tracker = AutoTrack(api, logger=log, poll_interval=settings.poll_interval)

        if args.command == "scan":
            if await tracker.start_scan(args.url, args.max_pages, args.max_depth) is None:
                log.fail(tracker.start_error or "Failed to start scan")
                return 1
            await follow(tracker, renderer, log)
            return 1 if tracker.display is DisplayPhase.FAILED else 0

        if args.command == "watch":
            if args.scan_id:
                tracker.select_scan(args.scan_id)
            await follow(tracker, renderer, log)
            return 0

        if args.command == "history":
            renderer.history(await api.list_scans())
            return 0

        if args.command == "cancel":
            tracker.select_scan(args.scan_id)
            await tracker.cancel_scan()
            return 0

        review = RecommendationReview(api, args.scan_id, logger=log)
        if args.command == "recs":
            filters = {"severity": [args.severity] if args.severity else None,
                       "status": [args.status.upper()] if args.status else None}
            await review.load(filters)
            scan = await api.get_scan(args.scan_id)
            renderer.recommendations(review.recommendations, scan.pages)
        elif args.command == "accept":
            for rid in args.ids:
                await review.accept(rid)
        elif args.command == "reject":
            for rid in args.ids:
                await review.reject(rid)
        elif args.command == "bulk-accept":
            if not args.ids:
                await review.load()
                review.select_all_pending()
            await review.bulk_accept(args.ids or None)
        elif args.command == "create-trackings":
            result = await review.create_trackings(args.ids)
            return 1 if result.failed else 0
    return 0


def main():
    args = build_parser().parse_args()
    settings = Settings.from_env().override(
        api_url=args.api_url, api_token=args.token,
        customer_id=args.customer, proxy=args.proxy)
    if not settings.customer_id:
        Log().fail("No customer id (use --customer or AUTOTRACK_CUSTOMER_ID)")
        sys.exit(2)
    try:
        code = asyncio.run(run(args, settings))
    except ApiError as exc:
        Log().fail(str(exc))
        code = 1
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
