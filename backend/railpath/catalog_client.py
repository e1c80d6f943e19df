from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any, Final

import httpx

from .geometry import BBox
from .logging_utils import log_event
from .segments import RailwaySegment, SplitRecord


class CatalogError(RuntimeError):
    pass


class CatalogRetryableError(CatalogError):
    """A catalog error that is likely transient and safe to retry."""

    pass


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


def _format_catalog_error(resp: httpx.Response) -> str:
    try:
        data = resp.json()
        if isinstance(data, dict):
            message = data.get("detail") or data.get("message")
            if message:
                return f"catalog {resp.status_code}: {message}"
    except ValueError:
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"catalog {resp.status_code}: {body}"
    return f"catalog HTTP {resp.status_code}"


def _segments_from_payload(data: Any) -> list[RailwaySegment]:
    rows = data.get("features", data.get("segments", [])) if isinstance(data, dict) else data
    out: list[RailwaySegment] = []
    for row in rows if isinstance(rows, list) else []:
        if not isinstance(row, dict):
            continue
        geometry = row.get("geometry") if isinstance(row.get("geometry"), dict) else {}
        coords = geometry.get("coordinates", row.get("coordinates"))
        props = row.get("properties") if isinstance(row.get("properties"), dict) else {}
        segment_id = row.get("id", props.get("id"))
        if segment_id is None or not isinstance(coords, list) or len(coords) < 2:
            continue
        out.append(RailwaySegment.from_coordinates(segment_id, coords))
    return out


class HttpSegmentStore:
    """Segment store backed by a remote catalog service.

    Endpoints: ``GET /segments?bbox=`` or ``?ids=``, ``GET /splits``,
    ``PUT /splits/{part_id}``, ``DELETE /splits/{part_id}`` and
    ``GET /splits/revision``. The split revision comes from the catalog so
    that writes made by other instances invalidate cached graphs too; a
    catalog without that endpoint falls back to a counter of writes made
    through this client.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float = 20.0,
        max_retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, int(max_retries))
        self._revision = 0
        # trust_env=False keeps proxy env vars away from an in-cluster catalog service.
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(float(timeout_s), connect=5.0),
            trust_env=False,
            headers={"accept": "application/json"},
            transport=transport,
        )

    @property
    def revision(self) -> int:
        data = self._request("GET", "/splits/revision", missing_ok=True)
        remote = data.get("revision") if isinstance(data, dict) else None
        if remote is None:
            return self._revision
        return int(remote)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, *, missing_ok: bool = False, **kwargs: Any) -> Any:
        last_err: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                resp = self._client.request(method, path, **kwargs)
                if resp.status_code in _RETRYABLE_STATUS:
                    raise CatalogRetryableError(_format_catalog_error(resp))
                if resp.status_code == 404 and missing_ok:
                    return None
                if resp.status_code >= 400:
                    raise CatalogError(_format_catalog_error(resp))
                return resp.json() if resp.content else {}
            except CatalogRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_err = e

            if attempt < self.max_retries - 1:
                time.sleep(min(0.25 * (2**attempt), 2.0))

        if last_err is None:
            detail = "unknown error"
        else:
            msg = str(last_err).strip()
            detail = f"{type(last_err).__name__}: {msg}" if msg else f"{type(last_err).__name__}: {last_err!r}"
        raise CatalogError(
            f"catalog request failed after {self.max_retries} retries (base={self.base_url}): {detail}"
        )

    def load_edges(
        self,
        *,
        ids: Iterable[str] | None = None,
        bbox: BBox | None = None,
    ) -> list[RailwaySegment]:
        params: dict[str, str] = {}
        if ids is not None:
            params["ids"] = ",".join(str(i) for i in ids)
        elif bbox is not None:
            params["bbox"] = ",".join(f"{v:.6f}" for v in bbox)
        segments = _segments_from_payload(self._request("GET", "/segments", params=params))
        log_event("segment_catalog_fetch", base_url=self.base_url, segment_count=len(segments), **params)
        return segments

    def load_splits(self) -> list[SplitRecord]:
        data = self._request("GET", "/splits")
        rows = data.get("splits", []) if isinstance(data, dict) else data
        return [SplitRecord.from_dict(row) for row in rows if isinstance(row, dict)] if isinstance(rows, list) else []

    def get_segment(self, segment_id: str) -> RailwaySegment | None:
        found = self.load_edges(ids=[segment_id])
        return found[0] if found else None

    def upsert_split(self, split: SplitRecord) -> SplitRecord:
        self._request("PUT", f"/splits/{split.part_id}", json=split.to_dict())
        self._revision += 1
        return split

    def delete_split(self, part_id: str) -> bool:
        removed = self._request("DELETE", f"/splits/{part_id}", missing_ok=True) is not None
        self._revision += 1
        return removed
