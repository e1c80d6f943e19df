from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .graph_cache import clear_graph_cache, graph_cache_stats
from .logging_utils import configure_logging, timed_event
from .metrics_store import metrics_snapshot, record_path_outcome, record_request
from .models import (
    CoordinatePathRequest,
    EndpointPathRequest,
    PathDiagnostics,
    PathResponse,
    SplitRemovedResponse,
    SplitRequest,
    SplitResponse,
)
from .pathfinder import RailPathfinder, pathfinder_from_settings
from .results import DegenerateSplit, NoNearbySegment, NoPathFound, PathOutcome, PathResult, SegmentNotFound
from .segments import SplitRecord
from .split_actions import remove_split, split_segment, split_segments_geojson

_STATUS_BY_REASON: dict[str, int] = {
    NoNearbySegment.reason_code: 404,
    NoPathFound.reason_code: 404,
    SegmentNotFound.reason_code: 404,
    DegenerateSplit.reason_code: 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    app.state.pathfinder = pathfinder_from_settings()
    yield
    close = getattr(app.state.pathfinder.store, "close", None)
    if callable(close):
        close()


app = FastAPI(title="Rail Pathfinder", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pathfinder(request: Request) -> RailPathfinder:
    finder: RailPathfinder | None = getattr(request.app.state, "pathfinder", None)
    if finder is None:
        raise HTTPException(status_code=503, detail="pathfinder not initialised")
    return finder


PathfinderDep = Annotated[RailPathfinder, Depends(get_pathfinder)]


def _failure(outcome: NoNearbySegment | NoPathFound | SegmentNotFound | DegenerateSplit) -> HTTPException:
    return HTTPException(status_code=_STATUS_BY_REASON.get(outcome.reason_code, 404), detail=outcome.to_payload())


def _outcome_code(outcome: PathOutcome) -> str:
    return "path_found" if isinstance(outcome, PathResult) else outcome.reason_code


def _path_response(outcome: PathOutcome) -> PathResponse:
    record_path_outcome(_outcome_code(outcome))
    if not isinstance(outcome, PathResult):
        raise _failure(outcome)
    return PathResponse(
        edge_ids=list(outcome.edge_ids),
        coordinates=[(lon, lat) for lon, lat in outcome.coordinates],
        diagnostics=PathDiagnostics(**outcome.diagnostics()),
    )


async def _timed(endpoint: str, fn: Any, *args: Any) -> Any:
    t0 = time.perf_counter()
    error = True
    try:
        out = await asyncio.to_thread(fn, *args)
        error = False
        return out
    finally:
        record_request(endpoint, duration_ms=(time.perf_counter() - t0) * 1000.0, error=error)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/paths/by-endpoints", response_model=PathResponse)
async def path_by_endpoints(req: EndpointPathRequest, finder: PathfinderDep) -> PathResponse:
    with timed_event(
        "path_request",
        mode="endpoints",
        start_segment_id=req.start_segment_id,
        end_segment_id=req.end_segment_id,
    ) as fields:
        outcome = await _timed(
            "paths_by_endpoints", finder.find_path_by_endpoints, req.start_segment_id, req.end_segment_id
        )
        fields["outcome"] = _outcome_code(outcome)
    return _path_response(outcome)


@app.post("/paths/by-coordinates", response_model=PathResponse)
async def path_by_coordinates(req: CoordinatePathRequest, finder: PathfinderDep) -> PathResponse:
    with timed_event("path_request", mode="coordinates", start=list(req.start), end=list(req.end)) as fields:
        outcome = await _timed("paths_by_coordinates", finder.find_path_by_coordinates, req.start, req.end)
        fields["outcome"] = _outcome_code(outcome)
    return _path_response(outcome)


@app.post("/splits", response_model=SplitResponse)
async def create_split(req: SplitRequest, finder: PathfinderDep) -> SplitResponse:
    outcome = await _timed("splits_create", split_segment, finder.store, req.part_id, req.coordinate)
    if not isinstance(outcome, SplitRecord):
        raise _failure(outcome)
    # Cached graphs carry the previous split table.
    clear_graph_cache()
    return SplitResponse(**outcome.to_dict())


@app.delete("/splits/{part_id}", response_model=SplitRemovedResponse)
async def delete_split(part_id: str, finder: PathfinderDep) -> SplitRemovedResponse:
    removed = await _timed("splits_delete", remove_split, finder.store, part_id)
    if removed:
        clear_graph_cache()
    return SplitRemovedResponse(part_id=part_id, removed=removed)


@app.get("/splits/geojson")
async def splits_geojson(finder: PathfinderDep) -> dict[str, Any]:
    return await _timed("splits_geojson", split_segments_geojson, finder.store)


@app.get("/metrics")
async def metrics() -> dict[str, object]:
    return metrics_snapshot()


@app.get("/cache/stats")
async def cache_stats() -> dict[str, int]:
    return graph_cache_stats()


@app.delete("/cache")
async def cache_clear() -> dict[str, int]:
    return {"cleared": clear_graph_cache()}
