"""Login-wall handling during a running scan.

When the crawl hits a login page the user gets one prompt with three ways
out: hand over credentials, let the backend find a signup page and register
a test account, or skip the protected pages. The chunk loop keeps running
the whole time; credentials only change what later chunk requests carry.
"""

import asyncio
from typing import List, Optional

from autotrack.core.api import ApiError, ScanApi
from autotrack.core.driver import ChunkedScanDriver
from autotrack.core.models import ChunkProgress, Credentials

OPTIONS = ("credentials", "auto-register", "skip")

# auto-register display steps, in order
AUTO_IDLE = "idle"
AUTO_FINDING_SIGNUP = "finding_signup"
AUTO_CREATING_ACCOUNT = "creating_account"
AUTO_SUCCESS = "success"
AUTO_FAILED = "failed"


class CredentialFlow:
    def __init__(self, api: ScanApi, driver: ChunkedScanDriver, logger=None,
                 ui_delay: float = 2.0):
        self.api = api
        self.driver = driver
        self.logger = logger
        self.ui_delay = ui_delay
        self._timer: Optional[asyncio.TimerHandle] = None
        self._hide_timer: Optional[asyncio.TimerHandle] = None
        self.reset()

    def reset(self):
        for handle in (self._timer, self._hide_timer):
            if handle is not None:
                handle.cancel()
        self._timer = None
        self._hide_timer = None

        self.show_prompt = False
        self.skipped = False
        self._prompted = False
        self.login_url: Optional[str] = None
        self.selected_option: Optional[str] = None

        self.login_status = "idle"   # idle, submitting, success, failed
        self.login_error: Optional[str] = None
        self.username = ""
        self.password = ""

        self.auto_register_status = AUTO_IDLE
        self.auto_register_error: Optional[str] = None
        self.auto_register_history: List[str] = [AUTO_IDLE]

    def observe(self, progress: ChunkProgress):
        """Raise the prompt the first time the driver reports a login wall."""
        if not progress.login_detected or self.skipped or self._prompted:
            return
        self._prompted = True
        self.show_prompt = True
        self.login_url = progress.login_url
        if self.logger:
            self.logger.warn(f"Login required at {progress.login_url or '(unknown)'}; "
                             "crawling of public pages continues")

    def choose(self, option: Optional[str]):
        if option is not None and option not in OPTIONS:
            raise ValueError(f"Unknown option: {option!r}")
        self.selected_option = option

    def skip(self):
        self.selected_option = "skip"
        self.skipped = True
        self.show_prompt = False
        if self.logger:
            self.logger.info("Skipping protected pages")

    # ---------- option 1: credentials ----------

    async def submit_credentials(self, scan_id: str, username: str, password: str,
                                 save_for_future: bool = False) -> bool:
        if not username or not password:
            return False
        self.selected_option = "credentials"
        self.username, self.password = username, password
        self.login_status = "submitting"
        self.login_error = None
        try:
            await self.api.provide_credentials(scan_id, username, password, save_for_future)
        except ApiError as exc:
            self.login_status = "failed"
            self.login_error = exc.message or "Login failed"
            if self.logger:
                self.logger.fail(f"Credentials rejected: {exc}")
            return False

        self.driver.set_credentials(Credentials(username, password))
        self.login_status = "success"
        self.show_prompt = False
        if self.logger:
            self.logger.ok(f"Credentials for {username} will be used on the next chunks")
        return True

    def retry(self):
        """Back to the credential form, keeping the username."""
        self.login_status = "idle"
        self.login_error = None
        self.password = ""

    # ---------- option 2: auto-register ----------

    async def auto_register(self, scan_id: str) -> bool:
        if self.auto_register_status in (AUTO_FINDING_SIGNUP, AUTO_CREATING_ACCOUNT):
            return False
        self.selected_option = "auto-register"
        self.auto_register_error = None
        if self.auto_register_status != AUTO_IDLE:
            self._set_auto(AUTO_IDLE)
        self._set_auto(AUTO_FINDING_SIGNUP)
        loop = asyncio.get_running_loop()
        # cosmetic: the backend gives one answer at the end, not per step
        self._timer = loop.call_later(self.ui_delay, self._advance_to_creating)

        try:
            result = await self.api.auto_register(scan_id)
        except ApiError as exc:
            self._finish_auto(AUTO_FAILED, exc.message or "Auto-registration failed")
            return False

        if result.success and result.credentials:
            self._finish_auto(AUTO_SUCCESS)
            self.driver.set_credentials(result.credentials)
            self._hide_timer = loop.call_later(self.ui_delay, self._hide_prompt)
            if self.logger:
                self.logger.ok(f"Registered test account {result.credentials.username}")
            return True

        self._finish_auto(AUTO_FAILED, result.error or "Auto-registration failed")
        return False

    def back_to_options(self):
        """After a failed auto-register, offer the other resolutions again."""
        if self.auto_register_status in (AUTO_FINDING_SIGNUP, AUTO_CREATING_ACCOUNT):
            return
        self.selected_option = None
        self.auto_register_error = None
        if self.auto_register_status != AUTO_IDLE:
            self._set_auto(AUTO_IDLE)

    def _advance_to_creating(self):
        self._timer = None
        if self.auto_register_status == AUTO_FINDING_SIGNUP:
            self._set_auto(AUTO_CREATING_ACCOUNT)

    def _finish_auto(self, status: str, error: Optional[str] = None):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.auto_register_status == AUTO_FINDING_SIGNUP:
            self._set_auto(AUTO_CREATING_ACCOUNT)
        self._set_auto(status)
        self.auto_register_error = error
        if error and self.logger:
            self.logger.fail(f"Auto-registration failed: {error}")

    def _set_auto(self, status: str):
        self.auto_register_status = status
        self.auto_register_history.append(status)

    def _hide_prompt(self):
        self._hide_timer = None
        self.show_prompt = False
