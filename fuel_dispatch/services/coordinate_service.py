from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

from fuel_dispatch.adapters.base import SiteDirectory, StoreError
from fuel_dispatch.domain.models import DriverTaskRead, Site

logger = logging.getLogger(__name__)

LATITUDE_LEGACY_KEYS = ("latitude", "lat", "siteLatitude")
LONGITUDE_LEGACY_KEYS = ("longitude", "lng", "siteLongitude")
DIRECTIONS_BASE_URL = "https://www.google.com/maps/dir/?api=1&destination="


def normalize_site_key(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def to_number_or_none(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def numeric_site_id(value: object) -> int | None:
    number = to_number_or_none(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _first_number(primary: object, legacy: dict, keys: Iterable[str]) -> float | None:
    candidate = to_number_or_none(primary)
    if candidate is not None:
        return candidate
    for key in keys:
        candidate = to_number_or_none(legacy.get(key))
        if candidate is not None:
            return candidate
    return None


def task_coordinate_pair(task: DriverTaskRead) -> tuple[float, float] | None:
    """Return the task's own (lat, lon) when both halves are numeric."""
    latitude = _first_number(task.site_latitude, task.legacy, LATITUDE_LEGACY_KEYS)
    longitude = _first_number(task.site_longitude, task.legacy, LONGITUDE_LEGACY_KEYS)
    if latitude is None or longitude is None:
        return None
    return latitude, longitude


def directions_url(task: DriverTaskRead) -> str | None:
    pair = task_coordinate_pair(task)
    if pair is None:
        return None
    return f"{DIRECTIONS_BASE_URL}{pair[0]},{pair[1]}"


@dataclass(frozen=True)
class SiteCoordinate:
    latitude: float
    longitude: float
    site_id: int | None
    site_name: str | None


class SiteCoordinateCache:
    """Resolved site coordinates keyed by normalized site id and site name.

    One instance belongs to one driver workspace and lives as long as it does.
    """

    def __init__(self) -> None:
        self._entries: dict[str, SiteCoordinate] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, *keys: str) -> SiteCoordinate | None:
        for key in keys:
            if key and key in self._entries:
                return self._entries[key]
        return None

    def remember(self, site: Site) -> SiteCoordinate | None:
        latitude = to_number_or_none(site.latitude)
        longitude = to_number_or_none(site.longitude)
        if latitude is None or longitude is None:
            return None
        coordinate = SiteCoordinate(
            latitude=latitude,
            longitude=longitude,
            site_id=site.id,
            site_name=site.site_name,
        )
        for key in (normalize_site_key(site.id), normalize_site_key(site.site_name)):
            if key:
                self._entries[key] = coordinate
        return coordinate

    def clear(self) -> None:
        self._entries.clear()


def _cache_keys(task: DriverTaskRead) -> tuple[str, str]:
    site_id = numeric_site_id(task.site_id)
    id_key = normalize_site_key(site_id) if site_id is not None else ""
    return id_key, normalize_site_key(task.site_name)


class TaskEnricher:
    def __init__(self, directory: SiteDirectory, cache: SiteCoordinateCache) -> None:
        self.directory = directory
        self.cache = cache

    def ensure_location(self, task: DriverTaskRead) -> DriverTaskRead:
        if task_coordinate_pair(task) is not None:
            return task
        coordinate = self.cache.get(*_cache_keys(task))
        if coordinate is None:
            return task
        return task.model_copy(
            update={
                "site_latitude": coordinate.latitude,
                "site_longitude": coordinate.longitude,
            }
        )

    async def _lookup(self, label: str, call) -> list[Site]:
        try:
            return await call
        except StoreError:
            logger.warning("site lookup by %s failed", label, exc_info=True)
            return []

    async def enrich(self, tasks: list[DriverTaskRead]) -> list[DriverTaskRead]:
        """Attach site coordinates to every task that lacks a usable pair.

        Unresolved ids and names across the whole batch go out as at most one lookup
        per axis; tasks still unresolved afterwards are returned unchanged.
        """
        missing_ids: set[int] = set()
        missing_names: dict[str, str] = {}
        for task in tasks:
            if task_coordinate_pair(task) is not None:
                continue
            if self.cache.get(*_cache_keys(task)) is not None:
                continue
            site_id = numeric_site_id(task.site_id)
            if site_id is not None:
                missing_ids.add(site_id)
            name_key = normalize_site_key(task.site_name)
            if name_key:
                missing_names.setdefault(name_key, (task.site_name or "").strip())

        if missing_ids or missing_names:
            pending = []
            if missing_ids:
                pending.append(self._lookup("id", self.directory.find_sites_by_ids(sorted(missing_ids))))
            if missing_names:
                pending.append(self._lookup("name", self.directory.find_sites_by_names(list(missing_names.values()))))
            for sites in await asyncio.gather(*pending):
                for site in sites:
                    self.cache.remember(site)

        return [self.ensure_location(task) for task in tasks]
