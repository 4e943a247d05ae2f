from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for
from sqlalchemy.orm import Session

from app.portal.audit import record_event
from app.portal.constants import PERMISSIONS, ROLE_ADMINISTRATOR, ROLE_AGENCY_OWNER, ROLE_PERMISSIONS, ROLES
from app.portal.models import Permission, Profile, Role


def user_roles(user: Profile | None) -> list[str]:
    """Role labels held by an active user, sorted."""
    if not user or not user.is_active:
        return []
    return user.role_keys


def user_has_role(user: Profile | None, role_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return any(r.key == role_key for r in user.roles)


def user_has_permission(user: Profile | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: Profile | None = getattr(g, "current_user", None)
            # Unauthenticated -> login, keeping the target as ?next=
            if not user or not user.is_active:
                nxt = request.full_path or request.path
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def nav_context(user: Profile | None) -> dict:
    """Template helpers; the admin link shows for administrators and the agency link for agency owners."""

    def has_perm(key: str) -> bool:
        return user_has_permission(user, key)

    def has_role(key: str) -> bool:
        return user_has_role(user, key)

    return {
        "current_user": user,
        "has_perm": has_perm,
        "has_role": has_role,
        "show_admin_link": user_has_role(user, ROLE_ADMINISTRATOR),
        "show_agency_link": user_has_role(user, ROLE_AGENCY_OWNER),
    }


def get_role(s: Session, role_key: str) -> Role:
    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if role is None:
        raise LookupError(f"Unknown role {role_key!r}; run scripts/init_db.py")
    return role


def assign_role(s: Session, user: Profile, role_key: str, *, actor: Profile | None) -> bool:
    """Insert the (user, role) pair. Returns False when the user already holds the role."""
    role = get_role(s, role_key)
    if role in user.roles:
        return False
    user.roles.append(role)
    record_event(
        s,
        actor=actor,
        action="user.role_add",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": role_key},
    )
    return True


def revoke_role(s: Session, user: Profile, role_key: str, *, actor: Profile | None) -> bool:
    """Delete exactly the (user, role) pair. Returns False when there was nothing to remove."""
    role = get_role(s, role_key)
    if role not in user.roles:
        return False
    user.roles.remove(role)
    record_event(
        s,
        actor=actor,
        action="user.role_remove",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": role_key},
    )
    return True


def sync_roles_and_permissions(s: Session) -> dict[str, Role]:
    """
    Idempotently create the fixed role labels and their permission grants.
    Extra grants added by hand are left alone.
    """
    perms: dict[str, Permission] = {p.key: p for p in s.query(Permission).all()}
    for key, name in PERMISSIONS.items():
        if key not in perms:
            perms[key] = Permission(key=key, name=name)
            s.add(perms[key])

    roles: dict[str, Role] = {r.key: r for r in s.query(Role).all()}
    for key, name in ROLES.items():
        role = roles.get(key)
        if role is None:
            role = Role(key=key, name=name)
            s.add(role)
            roles[key] = role
        for perm_key in ROLE_PERMISSIONS[key]:
            if perms[perm_key] not in role.permissions:
                role.permissions.append(perms[perm_key])
    s.flush()
    return roles
