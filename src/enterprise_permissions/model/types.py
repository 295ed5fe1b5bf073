"""Core data model for roles, users, permission rules and decisions.

All records are frozen dataclasses holding tuples, so a snapshot built from
them cannot be mutated in place.  Edits go through
:func:`dataclasses.replace` to produce new records (copy-on-write).

Rule identity is the ``(resource, action)`` pair within a scope (a role's
own permissions, or a user's custom permissions).  Resource and action
strings are opaque, case-sensitive identifiers; no wildcard matching is
performed anywhere in the engine.

Plain-dict constructors (``from_dict``) accept both ``snake_case`` keys and
the ``camelCase`` keys used by the hosted backend (``primaryRole``,
``isSystem`` ...), so definitions exported by either side load unchanged.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from enterprise_permissions.model.errors import UnknownSubjectWarning

RuleKey = tuple[str, str]
"""``(resource, action)`` identity of a permission rule."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Decision(str, Enum):
    """Outcome of a permission evaluation."""

    ALLOW = "allow"
    DENY = "deny"

    @classmethod
    def from_granted(cls, granted: bool) -> Decision:
        return cls.ALLOW if granted else cls.DENY


class RuleSource(str, Enum):
    """The precedence layer that decided a ``(resource, action)`` pair."""

    ROLE_RULE = "role_rule"
    USER_OVERRIDE = "user_override"
    RESTRICTION = "restriction"
    DEFAULT = "default"


# ---------------------------------------------------------------------------
# dict helpers
# ---------------------------------------------------------------------------


def _pick(data: Mapping[str, object], snake: str, camel: str, default: object = None) -> object:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _require_str(data: Mapping[str, object], key: str, owner: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"{owner}.{key} must be a non-empty string; got {value!r}.")
    return value


def _str_tuple(value: object, owner: str, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{owner}.{key} must be a list; got {type(value).__name__}.")
    return tuple(str(v) for v in value)


def _timestamp(value: object, owner: str, key: str) -> datetime.datetime | None:
    """Parse an ISO-8601 string, date or datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"{owner}.{key} is not an ISO-8601 timestamp: {value!r}.") from None
    if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        value = datetime.datetime.combine(value, datetime.time())
    if not isinstance(value, datetime.datetime):
        raise ValueError(f"{owner}.{key} must be a timestamp; got {type(value).__name__}.")
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value


def _expired(expires_at: datetime.datetime | None, at: datetime.datetime) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
    if at.tzinfo is None:
        at = at.replace(tzinfo=datetime.timezone.utc)
    return expires_at <= at


# ---------------------------------------------------------------------------
# PermissionRule
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PermissionRule:
    """A grant or explicit deny for one ``(resource, action)`` pair.

    Attributes
    ----------
    id:
        Opaque handle used for editing and audit attribution.
    resource:
        Resource identifier (e.g. ``"projects"``).
    action:
        Action identifier (e.g. ``"edit"``).
    granted:
        ``True`` for a grant, ``False`` for an explicit deny.  The absence
        of a rule is a third, distinct state ("no opinion").
    reason:
        Optional free-text justification shown in audit trails.
    granted_by, granted_at:
        Who issued the rule and when.  Informational only.
    expires_at:
        Instant after which the rule no longer takes part in evaluation.
        ``None`` means it never expires.
    """

    id: str
    resource: str
    action: str
    granted: bool
    reason: str = ""
    granted_by: str = ""
    granted_at: datetime.datetime | None = None
    expires_at: datetime.datetime | None = None

    @property
    def key(self) -> RuleKey:
        return (self.resource, self.action)

    def is_expired(self, at: datetime.datetime) -> bool:
        return _expired(self.expires_at, at)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PermissionRule:
        """Build a rule from a plain dictionary.

        Raises
        ------
        ValueError
            If ``id``, ``resource`` or ``action`` are missing, or ``granted``
            is not a boolean.
        """
        granted = data.get("granted")
        if not isinstance(granted, bool):
            raise ValueError(f"PermissionRule.granted must be a boolean; got {granted!r}.")
        return cls(
            id=_require_str(data, "id", "PermissionRule"),
            resource=_require_str(data, "resource", "PermissionRule"),
            action=_require_str(data, "action", "PermissionRule"),
            granted=granted,
            reason=str(data.get("reason", "") or ""),
            granted_by=str(_pick(data, "granted_by", "grantedBy", "") or ""),
            granted_at=_timestamp(
                _pick(data, "granted_at", "grantedAt"), "PermissionRule", "granted_at"
            ),
            expires_at=_timestamp(
                _pick(data, "expires_at", "expiresAt"), "PermissionRule", "expires_at"
            ),
        )

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "id": self.id,
            "resource": self.resource,
            "action": self.action,
            "granted": self.granted,
        }
        if self.reason:
            result["reason"] = self.reason
        if self.granted_by:
            result["granted_by"] = self.granted_by
        if self.granted_at is not None:
            result["granted_at"] = self.granted_at.isoformat()
        if self.expires_at is not None:
            result["expires_at"] = self.expires_at.isoformat()
        return result


# ---------------------------------------------------------------------------
# Restriction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Restriction:
    """A user-scoped lockout that always denies one ``(resource, action)`` pair.

    A restriction wins over every grant found at any other layer.  A
    disabled restriction, or one past its ``expires_at``, has no effect.
    """

    id: str
    resource: str
    action: str
    name: str = ""
    reason: str = ""
    enabled: bool = True
    expires_at: datetime.datetime | None = None

    @property
    def key(self) -> RuleKey:
        return (self.resource, self.action)

    def is_expired(self, at: datetime.datetime) -> bool:
        return _expired(self.expires_at, at)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Restriction:
        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ValueError(f"Restriction.enabled must be a boolean; got {enabled!r}.")
        return cls(
            id=_require_str(data, "id", "Restriction"),
            resource=_require_str(data, "resource", "Restriction"),
            action=_require_str(data, "action", "Restriction"),
            name=str(data.get("name", "") or ""),
            reason=str(data.get("reason", "") or ""),
            enabled=enabled,
            expires_at=_timestamp(
                _pick(data, "expires_at", "expiresAt"), "Restriction", "expires_at"
            ),
        )

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "id": self.id,
            "resource": self.resource,
            "action": self.action,
            "enabled": self.enabled,
        }
        if self.name:
            result["name"] = self.name
        if self.reason:
            result["reason"] = self.reason
        if self.expires_at is not None:
            result["expires_at"] = self.expires_at.isoformat()
        return result


# ---------------------------------------------------------------------------
# CustomRole
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustomRole:
    """A named bundle of permission rules, optionally inheriting other roles.

    Attributes
    ----------
    id:
        Role identifier, used as the node id in the inheritance graph.
    name:
        Unique machine name.
    display_name:
        Human-facing label.
    is_system:
        System roles may only be changed or deleted by a privileged actor.
    permissions:
        The role's own rules; at most one rule per ``(resource, action)``.
    inheritance:
        Parent role ids whose effective rules this role inherits.
    is_active:
        An inactive role assigned to a user contributes no rules.
    description:
        Optional free text.
    """

    id: str
    name: str
    display_name: str = ""
    is_system: bool = False
    permissions: tuple[PermissionRule, ...] = ()
    inheritance: tuple[str, ...] = ()
    is_active: bool = True
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CustomRole:
        role_id = _require_str(data, "id", "CustomRole")
        name = str(data.get("name") or role_id)
        raw_permissions = data.get("permissions") or []
        if not isinstance(raw_permissions, list):
            raise ValueError(f"CustomRole.permissions of '{role_id}' must be a list.")
        is_system = _pick(data, "is_system", "isSystem", False)
        is_active = _pick(data, "is_active", "isActive", True)
        if not isinstance(is_system, bool) or not isinstance(is_active, bool):
            raise ValueError(f"CustomRole flags of '{role_id}' must be booleans.")
        return cls(
            id=role_id,
            name=name,
            display_name=str(_pick(data, "display_name", "displayName", "") or name),
            is_system=is_system,
            permissions=tuple(PermissionRule.from_dict(p) for p in raw_permissions),
            inheritance=_str_tuple(data.get("inheritance"), "CustomRole", "inheritance"),
            is_active=is_active,
            description=str(data.get("description", "") or ""),
        )

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "is_system": self.is_system,
            "is_active": self.is_active,
            "inheritance": list(self.inheritance),
            "permissions": [p.to_dict() for p in self.permissions],
        }
        if self.description:
            result["description"] = self.description
        return result


# ---------------------------------------------------------------------------
# EnterpriseUser
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EnterpriseUser:
    """A subject of permission evaluation.

    ``additional_roles`` is ordered: a later role overrides an earlier one
    on conflict.  A user with ``is_active=False`` is denied every action.
    """

    id: str
    primary_role: str | None = None
    additional_roles: tuple[str, ...] = ()
    custom_permissions: tuple[PermissionRule, ...] = ()
    restrictions: tuple[Restriction, ...] = ()
    is_active: bool = True
    display_name: str = ""

    @property
    def role_ids(self) -> tuple[str, ...]:
        """All assigned role ids in ascending precedence order."""
        head = (self.primary_role,) if self.primary_role else ()
        return head + self.additional_roles

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EnterpriseUser:
        user_id = _require_str(data, "id", "EnterpriseUser")
        primary = _pick(data, "primary_role", "primaryRole")
        raw_custom = _pick(data, "custom_permissions", "customPermissions", []) or []
        raw_restrictions = data.get("restrictions") or []
        if not isinstance(raw_custom, list) or not isinstance(raw_restrictions, list):
            raise ValueError(
                f"EnterpriseUser '{user_id}' custom permissions and restrictions must be lists."
            )
        is_active = _pick(data, "is_active", "isActive", True)
        if not isinstance(is_active, bool):
            raise ValueError(f"EnterpriseUser.is_active of '{user_id}' must be a boolean.")
        return cls(
            id=user_id,
            primary_role=str(primary) if primary else None,
            additional_roles=_str_tuple(
                _pick(data, "additional_roles", "additionalRoles"),
                "EnterpriseUser",
                "additional_roles",
            ),
            custom_permissions=tuple(PermissionRule.from_dict(p) for p in raw_custom),
            restrictions=tuple(Restriction.from_dict(r) for r in raw_restrictions),
            is_active=is_active,
            display_name=str(_pick(data, "display_name", "displayName", "") or ""),
        )

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {
            "id": self.id,
            "primary_role": self.primary_role,
            "additional_roles": list(self.additional_roles),
            "custom_permissions": [p.to_dict() for p in self.custom_permissions],
            "restrictions": [r.to_dict() for r in self.restrictions],
            "is_active": self.is_active,
        }
        if self.display_name:
            result["display_name"] = self.display_name
        return result


# ---------------------------------------------------------------------------
# PermissionEvaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PermissionEvaluation:
    """Explainable result of ``evaluate(user_id, resource, action)``.

    Attributes
    ----------
    user_id, resource, action:
        The evaluated request.
    decision:
        :attr:`Decision.ALLOW` or :attr:`Decision.DENY`.
    deciding_source:
        The precedence layer that produced the decision.
    deciding_role_id:
        For :attr:`RuleSource.ROLE_RULE`, the role whose own rule decided
        (an ancestor when the rule was inherited).
    via_role_id:
        For :attr:`RuleSource.ROLE_RULE`, the role assigned to the user
        through which the deciding rule was reached.
    rule_id:
        Id of the deciding rule or restriction, if any.
    snapshot_version:
        Version of the snapshot the decision was computed against.
    unknown_subject:
        ``True`` when ``user_id`` is absent from the snapshot.
    warning:
        The :class:`UnknownSubjectWarning` for unknown subjects.
    """

    user_id: str
    resource: str
    action: str
    decision: Decision
    deciding_source: RuleSource
    deciding_role_id: str | None = None
    via_role_id: str | None = None
    rule_id: str | None = None
    snapshot_version: int = 0
    unknown_subject: bool = False
    warning: UnknownSubjectWarning | None = field(default=None, compare=False)

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    def __bool__(self) -> bool:
        """Return True if the action is allowed."""
        return self.allowed

    @property
    def reason(self) -> str:
        """Human-readable explanation of which layer decided."""
        verdict = self.decision.value
        match self.deciding_source:
            case RuleSource.RESTRICTION:
                return f"{verdict}: restriction '{self.rule_id}' locks this action"
            case RuleSource.USER_OVERRIDE:
                return f"{verdict}: user override '{self.rule_id}'"
            case RuleSource.ROLE_RULE:
                via = (
                    f" via '{self.via_role_id}'"
                    if self.via_role_id and self.via_role_id != self.deciding_role_id
                    else ""
                )
                return f"{verdict}: rule '{self.rule_id}' of role '{self.deciding_role_id}'{via}"
            case _:
                if self.unknown_subject:
                    return f"{verdict}: unknown user '{self.user_id}'"
                return f"{verdict}: no applicable rule (default deny)"

    def to_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "resource": self.resource,
            "action": self.action,
            "decision": self.decision.value,
            "deciding_source": self.deciding_source.value,
            "deciding_role_id": self.deciding_role_id,
            "via_role_id": self.via_role_id,
            "rule_id": self.rule_id,
            "snapshot_version": self.snapshot_version,
            "unknown_subject": self.unknown_subject,
        }
