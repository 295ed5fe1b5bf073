"""YAML loader and exporter for role and user definitions.

A definitions document lists every role and user of one snapshot.  Keys may
be written in snake_case or camelCase.

Schema
------
::

    version: 7                 # optional snapshot version
    roles:
      - id: viewer
        name: viewer
        display_name: Viewer
        permissions:
          - {id: p1, resource: project, action: view, granted: true}
      - id: editor
        name: editor
        inheritance: [viewer]
        permissions:
          - {id: p2, resource: project, action: edit, granted: true}
    users:
      - id: alice
        primary_role: editor
        additional_roles: []
        custom_permissions:
          - {id: o1, resource: project, action: delete, granted: true}
        restrictions:
          - {id: r1, resource: billing, action: view, reason: "Contractor"}

Loading only parses and type-checks entries.  Cross-entry checks (cycles,
dangling references, duplicates) happen when a snapshot is built.

Example
-------
::

    document = DefinitionLoader().load("roles.yaml")
    snapshot = PermissionSnapshot.build(document.version or 1,
                                        document.roles, document.users)
    Path("export.yaml").write_text(dump_definitions(snapshot))
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TypeVar

import yaml

from enterprise_permissions.model.errors import DefinitionConfigError
from enterprise_permissions.model.types import CustomRole, EnterpriseUser
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass(frozen=True)
class DefinitionDocument:
    """Parsed, not yet validated, contents of a definitions file."""

    version: int | None
    roles: tuple[CustomRole, ...]
    users: tuple[EnterpriseUser, ...]

    def build_snapshot(self, default_version: int = 1) -> PermissionSnapshot:
        """Validate the document into a snapshot."""
        version = self.version if self.version is not None else default_version
        return PermissionSnapshot.build(version, self.roles, self.users)


class DefinitionLoader:
    """Loads :class:`DefinitionDocument` objects from YAML files, strings or dicts.

    Parameters
    ----------
    strict:
        When ``True``, unknown top-level keys are an error.  Default
        ``False`` (unknown keys are ignored).
    """

    _KNOWN_TOP_KEYS: frozenset[str] = frozenset(
        ["version", "roles", "users", "metadata", "description"]
    )

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict

    def load(self, config_path: str | Path) -> DefinitionDocument:
        """Load definitions from a YAML file on disk.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        DefinitionConfigError
            If the file cannot be parsed or an entry is malformed.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Definitions file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as fh:
            return self.load_from_yaml_string(fh.read(), config_path=str(config_path))

    def load_from_yaml_string(
        self,
        yaml_string: str,
        config_path: str | None = None,
    ) -> DefinitionDocument:
        try:
            raw = yaml.safe_load(yaml_string) or {}
        except yaml.YAMLError as exc:
            raise DefinitionConfigError(f"Failed to parse YAML: {exc}", config_path) from exc
        return self.load_from_dict(raw, config_path=config_path)

    def load_from_dict(
        self,
        config: dict[str, object],
        config_path: str | None = None,
    ) -> DefinitionDocument:
        self._validate_structure(config, config_path)

        version = config.get("version")
        if version is not None and (
            isinstance(version, bool) or not isinstance(version, int) or version < 0
        ):
            raise DefinitionConfigError(
                f"'version' must be a non-negative integer; got {version!r}.", config_path
            )

        roles = self._parse_entries(config, "roles", CustomRole.from_dict, config_path)
        users = self._parse_entries(config, "users", EnterpriseUser.from_dict, config_path)
        logger.info(
            "Parsed %d roles and %d users from %s",
            len(roles),
            len(users),
            config_path or "<dict>",
        )
        return DefinitionDocument(version=version, roles=roles, users=users)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _parse_entries(
        self,
        config: dict[str, object],
        key: str,
        parse: Callable[[dict[str, object]], _T],
        config_path: str | None,
    ) -> tuple[_T, ...]:
        raw_entries = config.get(key) or []
        if not isinstance(raw_entries, list):
            raise DefinitionConfigError(f"'{key}' must be a list.", config_path)
        parsed: list[_T] = []
        for index, raw_entry in enumerate(raw_entries):
            if not isinstance(raw_entry, dict):
                raise DefinitionConfigError(
                    f"Entry {index} of '{key}' must be a mapping.", config_path
                )
            try:
                parsed.append(parse(raw_entry))
            except (ValueError, KeyError, TypeError) as exc:
                raise DefinitionConfigError(
                    f"Error in {key[:-1]} at index {index}: {exc}", config_path
                ) from exc
        return tuple(parsed)

    def _validate_structure(self, raw: object, config_path: str | None) -> None:
        if not isinstance(raw, dict):
            raise DefinitionConfigError(
                "Definitions must be a YAML mapping (dict).", config_path
            )
        if self._strict:
            unknown_keys = set(raw.keys()) - self._KNOWN_TOP_KEYS
            if unknown_keys:
                raise DefinitionConfigError(
                    f"Unknown top-level keys: {sorted(unknown_keys)}. "
                    f"Known keys: {sorted(self._KNOWN_TOP_KEYS)}.",
                    config_path,
                )


def dump_definitions(snapshot: PermissionSnapshot) -> str:
    """Export a snapshot as a definitions YAML document."""
    return yaml.safe_dump(snapshot.to_dict(), sort_keys=False, allow_unicode=True)


def write_definitions(snapshot: PermissionSnapshot, path: str | Path) -> Path:
    """Write :func:`dump_definitions` output to ``path``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_definitions(snapshot), encoding="utf-8")
    logger.info("Exported snapshot v%d to %s", snapshot.version, path)
    return path
