from __future__ import annotations

import asyncio

from fuel_dispatch.adapters.memory_store import MemoryDataStore
from fuel_dispatch.domain.models import DriverTaskRead, Site
from fuel_dispatch.services.coordinate_service import (
    SiteCoordinateCache,
    TaskEnricher,
    directions_url,
    normalize_site_key,
    task_coordinate_pair,
    to_number_or_none,
)


def _store_with_sites(*sites: Site) -> MemoryDataStore:
    store = MemoryDataStore()
    for site in sites:
        asyncio.run(store.insert_site(site))
    store.calls.clear()
    return store


def test_number_coercion_rejects_blank_and_non_finite() -> None:
    assert to_number_or_none(" 24.7 ") == 24.7
    assert to_number_or_none("") is None
    assert to_number_or_none("nan") is None
    assert to_number_or_none("inf") is None
    assert to_number_or_none(True) is None
    assert normalize_site_key("  Site A ") == "site a"


def test_coordinate_pair_reads_legacy_names() -> None:
    task = DriverTaskRead(id="t1", legacy={"lat": "24.1", "lng": 46.7})
    assert task_coordinate_pair(task) == (24.1, 46.7)
    half = DriverTaskRead(id="t2", site_latitude=24.1)
    assert task_coordinate_pair(half) is None
    assert directions_url(task) == "https://www.google.com/maps/dir/?api=1&destination=24.1,46.7"
    assert directions_url(half) is None


def test_two_tasks_sharing_a_site_name_resolve_with_one_lookup() -> None:
    store = _store_with_sites(Site(site_name="Site A", latitude=24.5, longitude=46.6))
    enricher = TaskEnricher(store, SiteCoordinateCache())
    tasks = [
        DriverTaskRead(id="a", site_name="Site A"),
        DriverTaskRead(id="b", site_name="  site a"),
    ]

    enriched = asyncio.run(enricher.enrich(tasks))

    assert store.calls["find_sites_by_names"] == 1
    assert store.calls["find_sites_by_ids"] == 0
    assert [(task.site_latitude, task.site_longitude) for task in enriched] == [(24.5, 46.6), (24.5, 46.6)]
    assert tasks[0].site_latitude is None


def test_enrichment_batches_at_most_one_lookup_per_axis() -> None:
    sites = [Site(site_name=f"Site {index}", latitude=20.0 + index, longitude=40.0 + index) for index in range(6)]
    store = _store_with_sites(*sites)
    enricher = TaskEnricher(store, SiteCoordinateCache())
    tasks = [DriverTaskRead(id=f"id-{index}", site_id=str(index + 1)) for index in range(3)]
    tasks += [DriverTaskRead(id=f"name-{index}", site_name=f"Site {index}") for index in range(3, 6)]
    tasks.append(DriverTaskRead(id="ghost", site_id="999", site_name="Nowhere"))

    enriched = asyncio.run(enricher.enrich(tasks))

    assert store.calls["find_sites_by_ids"] == 1
    assert store.calls["find_sites_by_names"] == 1
    resolved = {task.id: task_coordinate_pair(task) for task in enriched}
    assert resolved["id-0"] == (20.0, 40.0)
    assert resolved["name-5"] == (25.0, 45.0)
    assert resolved["ghost"] is None


def test_enrichment_is_idempotent_and_served_from_cache() -> None:
    store = _store_with_sites(Site(site_name="Depot", latitude=21.5, longitude=39.2))
    cache = SiteCoordinateCache()
    enricher = TaskEnricher(store, cache)
    tasks = [DriverTaskRead(id="t1", site_id="1"), DriverTaskRead(id="t2", site_name="DEPOT")]

    first = asyncio.run(enricher.enrich(tasks))
    lookups_after_first = sum(store.calls.values())
    second = asyncio.run(enricher.enrich(tasks))
    third = asyncio.run(enricher.enrich(first))

    assert [task_coordinate_pair(task) for task in first] == [task_coordinate_pair(task) for task in second]
    assert [task_coordinate_pair(task) for task in third] == [(21.5, 39.2), (21.5, 39.2)]
    assert sum(store.calls.values()) == lookups_after_first
    assert len(cache) == 2


def test_tasks_with_own_coordinates_are_left_untouched() -> None:
    store = _store_with_sites(Site(site_name="Site A", latitude=1.0, longitude=1.0))
    enricher = TaskEnricher(store, SiteCoordinateCache())
    task = DriverTaskRead(id="own", site_name="Site A", site_latitude=9.0, site_longitude=8.0)

    enriched = asyncio.run(enricher.enrich([task]))

    assert enriched == [task]
    assert sum(store.calls.values()) == 0


def test_lookup_failure_degrades_to_unresolved() -> None:
    store = _store_with_sites(Site(site_name="Site A", latitude=1.0, longitude=2.0))
    store.fail_on = {"find_sites_by_names"}
    enricher = TaskEnricher(store, SiteCoordinateCache())

    enriched = asyncio.run(enricher.enrich([DriverTaskRead(id="t", site_name="Site A")]))

    assert task_coordinate_pair(enriched[0]) is None


def test_separate_caches_do_not_share_state() -> None:
    store = _store_with_sites(Site(site_name="Site A", latitude=1.0, longitude=2.0))
    first_cache = SiteCoordinateCache()
    asyncio.run(TaskEnricher(store, first_cache).enrich([DriverTaskRead(id="t", site_name="Site A")]))
    assert len(first_cache) == 2
    assert len(SiteCoordinateCache()) == 0
