from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_out_dir() -> str:
    # Keep logs and run artifacts in backend/out by default to avoid polluting source assets.
    return str(Path(__file__).resolve().parents[1] / "out")


def _parse_ceilings(raw: str) -> tuple[float, ...]:
    values: list[float] = []
    for chunk in str(raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            value = float(chunk)
        except ValueError:
            continue
        if value > 0.0:
            values.append(value)
    return tuple(sorted(set(values)))


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping tolerances and bounds out of code."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Graph construction
    node_tolerance_m: float = Field(default=0.5, gt=0.0, le=10.0, alias="NODE_TOLERANCE_M")
    split_endpoint_epsilon: float = Field(default=0.01, gt=0.0, lt=0.5, alias="SPLIT_ENDPOINT_EPSILON")

    # Snapping
    endpoint_tolerance_m: float = Field(default=1.0, gt=0.0, le=50.0, alias="ENDPOINT_TOLERANCE_M")
    snap_radius_m: float = Field(default=50.0, gt=0.0, le=1000.0, alias="SNAP_RADIUS_M")

    # Search bounds. Ceilings are tried in ascending order; each is a full, independent search.
    path_length_ceilings_km: str = Field(default="50,150,222", alias="PATH_LENGTH_CEILINGS_KM")
    bfs_max_expansions: int = Field(default=500_000, ge=100, alias="BFS_MAX_EXPANSIONS")
    region_buffer_factor: float = Field(default=1.0, ge=0.1, le=5.0, alias="REGION_BUFFER_FACTOR")

    # Segment store adapters
    segment_catalog_path: str = Field(default="", alias="SEGMENT_CATALOG_PATH")
    split_store_path: str = Field(default="", alias="SPLIT_STORE_PATH")
    segment_catalog_url: str = Field(default="", alias="SEGMENT_CATALOG_URL")
    segment_catalog_timeout_s: float = Field(default=20.0, ge=1.0, le=120.0, alias="SEGMENT_CATALOG_TIMEOUT_S")
    segment_catalog_max_retries: int = Field(default=3, ge=1, le=10, alias="SEGMENT_CATALOG_MAX_RETRIES")

    # Built-graph cache owned by the service layer
    graph_cache_ttl_s: int = Field(default=600, ge=1, alias="GRAPH_CACHE_TTL_S")
    graph_cache_max_entries: int = Field(default=64, ge=1, alias="GRAPH_CACHE_MAX_ENTRIES")

    @model_validator(mode="after")
    def _normalize_ceilings(self) -> "Settings":
        ceilings = _parse_ceilings(self.path_length_ceilings_km)
        if not ceilings:
            ceilings = (50.0, 150.0, 222.0)
        self.path_length_ceilings_km = ",".join(f"{value:g}" for value in ceilings)
        return self

    def length_ceilings_km(self) -> tuple[float, ...]:
        return _parse_ceilings(self.path_length_ceilings_km)


settings = Settings()
