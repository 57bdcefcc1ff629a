"""HTTP client for the AutoTrack scan API."""

from typing import Any, Dict, List, Optional

import httpx

from autotrack.core.models import (
    AutoRegisterResult, BulkCreateResult, ChunkResult, Credentials,
    Phase2ChunkResult, Recommendation, Scan, SiteCredential,
)


class ApiError(Exception):
    """A failed call to the scan API (HTTP error status or transport failure)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self):
        if self.status_code:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("message", "error"):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]
    return resp.reason_phrase or "Request failed"


class ScanApi:
    """Thin wrapper over ``/api/customers/{customerId}`` scan endpoints.

    One ``httpx.AsyncClient`` per instance. Every method returns parsed models
    and raises :class:`ApiError` on any failure.
    """

    def __init__(self, base_url: str, customer_id: str, token: str | None = None,
                 proxy: str | None = None, timeout: float = 120.0, verify: bool = True,
                 transport: httpx.AsyncBaseTransport | None = None, logger=None):
        self.customer_id = customer_id
        self.logger = logger
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, proxy=proxy,
            verify=verify, follow_redirects=True, timeout=timeout,
            transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    def _path(self, suffix: str) -> str:
        return f"/api/customers/{self.customer_id}{suffix}"

    async def _send(self, method: str, suffix: str, json: Any = None,
                    params: Dict[str, Any] | None = None) -> Any:
        url = self._path(suffix)
        if self.logger:
            self.logger.debug(f"→ {method} {url}")
        try:
            resp = await self.client.request(method, url, json=json, params=params)
        except httpx.TransportError as exc:
            raise ApiError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code >= 400:
            raise ApiError(_error_message(resp), resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(f"Invalid JSON from {url}", resp.status_code) from exc

    # ---------- scans ----------

    async def list_scans(self) -> List[Scan]:
        data = await self._send("GET", "/scans")
        return [Scan.from_dict(row) for row in data or []]

    async def get_scan(self, scan_id: str) -> Scan:
        return Scan.from_dict(await self._send("GET", f"/scans/{scan_id}"))

    async def start_scan(self, website_url: str | None = None, max_pages: int | None = None,
                         max_depth: int | None = None) -> Scan:
        body = {"websiteUrl": website_url, "maxPages": max_pages, "maxDepth": max_depth}
        body = {k: v for k, v in body.items() if v is not None}
        return Scan.from_dict(await self._send("POST", "/scans", json=body))

    async def process_chunk(self, scan_id: str, phase: str, chunk_size: int,
                            credentials: Credentials | None = None):
        body: Dict[str, Any] = {"phase": phase, "chunkSize": chunk_size}
        if credentials is not None:
            body["credentials"] = credentials.to_dict()
        data = await self._send("POST", f"/scans/{scan_id}/process-chunk", json=body)
        if phase == "phase2":
            return Phase2ChunkResult.from_dict(data or {})
        return ChunkResult.from_dict(data or {})

    async def detect_niche(self, scan_id: str) -> None:
        await self._send("POST", f"/scans/{scan_id}/detect-niche")

    async def confirm_niche(self, scan_id: str, niche: str) -> None:
        await self._send("POST", f"/scans/{scan_id}/confirm-niche", json={"niche": niche})

    async def finalize(self, scan_id: str) -> None:
        await self._send("POST", f"/scans/{scan_id}/finalize")

    async def cancel_scan(self, scan_id: str) -> None:
        await self._send("POST", f"/scans/{scan_id}/cancel")

    # ---------- credentials ----------

    async def provide_credentials(self, scan_id: str, username: str, password: str,
                                  save_for_future: bool = False) -> None:
        await self._send("POST", f"/scans/{scan_id}/provide-credentials", json={
            "username": username, "password": password, "saveForFuture": save_for_future,
        })

    async def auto_register(self, scan_id: str) -> AutoRegisterResult:
        data = await self._send("POST", f"/scans/{scan_id}/auto-register")
        return AutoRegisterResult.from_dict(data or {})

    async def list_credentials(self) -> List[SiteCredential]:
        data = await self._send("GET", "/credentials")
        return [SiteCredential.from_dict(row) for row in data or []]

    async def save_credential(self, domain: str, username: str, password: str,
                              login_url: str | None = None) -> SiteCredential:
        body = {"domain": domain, "username": username, "password": password}
        if login_url:
            body["loginUrl"] = login_url
        return SiteCredential.from_dict(await self._send("POST", "/credentials", json=body))

    async def delete_credential(self, credential_id: str) -> None:
        await self._send("DELETE", f"/credentials/{credential_id}")

    # ---------- recommendations ----------

    async def list_recommendations(self, scan_id: str,
                                   filters: Dict[str, Any] | None = None) -> List[Recommendation]:
        params = None
        if filters:
            # list filters go out as repeated query keys
            params = {k: v for k, v in filters.items() if v not in (None, [], "")}
        data = await self._send("GET", f"/scans/{scan_id}/recommendations", params=params)
        return [Recommendation.from_dict(row) for row in data or []]

    async def accept_recommendation(self, scan_id: str, recommendation_id: str) -> Recommendation | None:
        data = await self._send(
            "POST", f"/scans/{scan_id}/recommendations/{recommendation_id}/accept")
        return Recommendation.from_dict(data) if data else None

    async def reject_recommendation(self, scan_id: str, recommendation_id: str) -> Recommendation | None:
        data = await self._send(
            "POST", f"/scans/{scan_id}/recommendations/{recommendation_id}/reject")
        return Recommendation.from_dict(data) if data else None

    async def bulk_accept(self, scan_id: str, recommendation_ids: List[str]) -> None:
        await self._send("POST", f"/scans/{scan_id}/recommendations/bulk-accept",
                         json={"recommendationIds": list(recommendation_ids)})

    async def bulk_create_trackings(self, scan_id: str,
                                    recommendation_ids: List[str]) -> BulkCreateResult:
        data = await self._send(
            "POST", f"/scans/{scan_id}/recommendations/bulk-create-trackings",
            json={"recommendationIds": list(recommendation_ids)})
        return BulkCreateResult.from_dict(data or {})
