from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from fuel_dispatch.adapters.base import PushTokenStore, StoreError
from fuel_dispatch.domain.models import DriverProfile, DriverPushToken, PushBindingStateRead, now_utc

logger = logging.getLogger(__name__)

FALLBACK_TARGET = "/driver"


class SyncState(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass
class PushBinding:
    token: str | None = None
    platform: str | None = None
    profile: DriverProfile | None = None
    state: SyncState = SyncState.IDLE
    last_synced_signature: str | None = None

    @property
    def driver_name(self) -> str | None:
        name = (self.profile.name if self.profile else "").strip()
        return name or None

    @property
    def driver_phone(self) -> str | None:
        phone = ((self.profile.phone if self.profile else None) or "").strip()
        return phone or None

    def signature(self) -> str | None:
        if not self.token:
            return None
        return f"{self.token}|{self.driver_name or ''}|{self.driver_phone or ''}|{self.platform or ''}"


class PushBindingSync:
    """Keeps one device token bound to whoever is signed in on that device.

    A write happens only when the (token, name, phone, platform) signature differs
    from the last one that synced, and never while another sync is in flight.
    """

    def __init__(self, store: PushTokenStore) -> None:
        self.store = store
        self.binding = PushBinding()

    async def on_registration(self, token: str, platform: str, profile: DriverProfile | None = None) -> bool:
        self.binding.token = token.strip() or None
        self.binding.platform = platform.strip() or None
        if profile is not None:
            self.binding.profile = profile
        return await self.sync()

    async def bind_profile(self, profile: DriverProfile | None) -> bool:
        self.binding.profile = profile
        return await self.sync()

    async def unbind(self) -> bool:
        return await self.bind_profile(None)

    async def sync(self) -> bool:
        binding = self.binding
        signature = binding.signature()
        if signature is None or signature == binding.last_synced_signature:
            return False
        if binding.state is SyncState.SYNCING:
            logger.debug("push sync already in flight; dropping %s", signature)
            return False

        binding.state = SyncState.SYNCING
        try:
            await self.store.upsert_push_token(
                DriverPushToken(
                    token=binding.token,
                    driver_name=binding.driver_name,
                    driver_phone=binding.driver_phone,
                    platform=binding.platform or "",
                    updated_at=now_utc(),
                )
            )
        except StoreError:
            logger.error("failed to sync push token", exc_info=True)
            return False
        finally:
            binding.state = SyncState.IDLE
        binding.last_synced_signature = signature
        return True

    def to_read(self) -> PushBindingStateRead:
        return PushBindingStateRead(
            state=self.binding.state.value,
            token=self.binding.token,
            driver_name=self.binding.driver_name,
            driver_phone=self.binding.driver_phone,
            platform=self.binding.platform,
            last_synced_signature=self.binding.last_synced_signature,
        )


def resolve_notification_target(data: Any) -> str:
    """Map a tapped notification's payload to an in-app path; never raises."""
    try:
        payload = data or {}
        raw = None
        for key in ("path", "url"):
            candidate = payload.get(key)
            if isinstance(candidate, str) and candidate:
                raw = candidate
                break
        if raw is None:
            return FALLBACK_TARGET
        target = raw[1:] if raw.startswith("#") else raw
        return target if target.startswith("/") else FALLBACK_TARGET
    except Exception:
        logger.error("failed to handle notification tap", exc_info=True)
        return FALLBACK_TARGET
