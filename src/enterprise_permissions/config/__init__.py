"""Engine configuration and role/user definition files."""
from __future__ import annotations

from enterprise_permissions.config.definitions import (
    DefinitionDocument,
    DefinitionLoader,
    dump_definitions,
    write_definitions,
)
from enterprise_permissions.config.settings import (
    AuditConfig,
    CacheConfig,
    ConfigLoader,
    EngineConfig,
)

__all__ = [
    "AuditConfig",
    "CacheConfig",
    "ConfigLoader",
    "DefinitionDocument",
    "DefinitionLoader",
    "EngineConfig",
    "dump_definitions",
    "write_definitions",
]
