from __future__ import annotations

from typing import Any

PERM_WILDCARD = "*"
PERM_DRIVER_READ = "driver.read"
PERM_DRIVER_WRITE = "driver.write"
PERM_TASK_READ = "task.read"
PERM_TASK_WRITE = "task.write"
PERM_TASK_REVIEW = "task.review"
PERM_SITE_READ = "site.read"
PERM_SITE_WRITE = "site.write"
PERM_NOTIFICATION_WRITE = "notification.write"
PERM_DRIVER_APP = "driver.app"

ROLE_DISPATCHER = "dispatcher"
ROLE_DRIVER = "driver"

ROLE_PERMISSIONS: dict[str, list[str]] = {
    ROLE_DISPATCHER: [PERM_WILDCARD],
    ROLE_DRIVER: [PERM_DRIVER_APP],
}


def has_permission(claims: dict[str, Any], permission: str) -> bool:
    permissions = claims.get("permissions", [])
    if not isinstance(permissions, list):
        return False
    return permission in permissions or PERM_WILDCARD in permissions
