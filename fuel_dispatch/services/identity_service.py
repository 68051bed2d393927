from __future__ import annotations

import hashlib
import os

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from fuel_dispatch.domain.models import (
    Dispatcher,
    DispatcherBootstrapRequest,
    Driver,
    DriverCreate,
    DriverProfile,
)
from fuel_dispatch.domain.permissions import ROLE_DISPATCHER, ROLE_DRIVER, ROLE_PERMISSIONS
from fuel_dispatch.infra.db import get_engine


class IdentityError(Exception):
    pass


class NotFoundError(IdentityError):
    pass


class ConflictError(IdentityError):
    pass


class AuthError(IdentityError):
    pass


class ValidationError(IdentityError):
    pass


def sha256_hex(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()


class IdentityService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _hash_password(self, raw_password: str) -> str:
        salt = os.getenv("PASSWORD_SALT", "fuel-dev-salt")
        return sha256_hex(f"{salt}:{raw_password}")

    def permissions_for(self, role: str) -> list[str]:
        return list(ROLE_PERMISSIONS.get(role, []))

    def bootstrap_dispatcher(self, payload: DispatcherBootstrapRequest) -> Dispatcher:
        username = payload.username.strip()
        if not username or not payload.password:
            raise ValidationError("username and password are required")
        with self._session() as session:
            if session.exec(select(Dispatcher.id)).first() is not None:
                raise ConflictError("dispatcher already initialized")
            dispatcher = Dispatcher(
                username=username,
                password_hash=self._hash_password(payload.password),
                is_active=True,
            )
            session.add(dispatcher)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("username already exists") from exc
            session.refresh(dispatcher)
            return dispatcher

    def dispatcher_login(self, username: str, password: str) -> tuple[Dispatcher, list[str]]:
        with self._session() as session:
            dispatcher = session.exec(select(Dispatcher).where(Dispatcher.username == username.strip())).first()
        if dispatcher is None or not dispatcher.is_active:
            raise AuthError("invalid credentials")
        if dispatcher.password_hash != self._hash_password(password):
            raise AuthError("invalid credentials")
        return dispatcher, self.permissions_for(ROLE_DISPATCHER)

    def create_driver(self, payload: DriverCreate) -> Driver:
        name = payload.name.strip()
        if not name:
            raise ValidationError("driver name is required")
        driver = Driver(
            name=name,
            phone=(payload.phone or "").strip() or None,
            password_sha256=sha256_hex(payload.password) if payload.password else None,
            active=payload.active,
        )
        with self._session() as session:
            session.add(driver)
            session.commit()
            session.refresh(driver)
            return driver

    def list_drivers(self) -> list[Driver]:
        with self._session() as session:
            return list(session.exec(select(Driver).order_by(col(Driver.name))).all())

    def driver_login(self, name: str, password: str) -> tuple[DriverProfile, list[str]]:
        """Check a driver's password against the newest account with that name.

        Names match case-insensitively. Driver passwords are stored as plain sha256
        hex digests, the way the back office writes them.
        """
        wanted = name.strip().lower()
        statement = (
            select(Driver)
            .where(func.lower(func.trim(Driver.name)) == wanted)
            .order_by(col(Driver.created_at).desc(), col(Driver.id).desc())
        )
        with self._session() as session:
            driver = session.exec(statement).first()
        if driver is None or not driver.active:
            raise AuthError("Account not found or inactive")
        if not driver.password_sha256:
            raise AuthError("Password not set")
        if driver.password_sha256.lower() != sha256_hex(password):
            raise AuthError("Invalid password")
        profile = DriverProfile(name=driver.name, phone=driver.phone)
        return profile, self.permissions_for(ROLE_DRIVER)
