"""Resolve `${resourceName.fieldName}` references in agent configuration.

A string value that is exactly `${A.B}` is replaced with field `B` of the
`created_resource` output published by Resource `A`. The split happens at the
last dot, so `${a.b.c}` reads field `c` of Resource `a.b`. Nested maps are
resolved field by field; every other value passes through unchanged.

Resolution reads the store on every call and is never cached, so it always
reflects the live output of the referenced Resources.

Public API (the "studs"):
    TemplateRef: A parsed `${A.B}` reference
    parse_template: Parse a string into a TemplateRef, or None
    ConfigResolver: Resolve a configuration map against an ObjectStore
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

from .exceptions import ConfigResolutionError
from .store import ObjectStore

_logger = logging.getLogger(__name__)

_PREFIX = "${"
_SUFFIX = "}"


class TemplateRef(NamedTuple):
    resource: str
    field: str


def parse_template(value: str) -> TemplateRef | None:
    """Parse `${A.B}` into TemplateRef(A, B).

    Returns None when `value` is not a whole-string template, when it spans
    more than one line, or when either side of the last dot is empty.
    """
    if not (value.startswith(_PREFIX) and value.endswith(_SUFFIX)):
        return None
    inner = value[len(_PREFIX) : -len(_SUFFIX)]
    if "\n" in inner:
        return None
    resource, dot, field = inner.rpartition(".")
    if not dot or not resource or not field:
        return None
    return TemplateRef(resource, field)


class ConfigResolver:
    """Resolve templated configuration against Resources in an ObjectStore."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def resolve(self, configuration: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of `configuration` with every template replaced.

        Raises:
            ConfigResolutionError: If a referenced Resource, its output, or
                the requested field does not exist
        """
        return {key: await self.resolve_value(value) for key, value in configuration.items()}

    async def resolve_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return await self.resolve(value)
        if not isinstance(value, str):
            return value
        ref = parse_template(value)
        if ref is None:
            return value
        return await self._lookup(ref)

    async def _lookup(self, ref: TemplateRef) -> Any:
        resource = await self._store.get_resource(ref.resource)
        if resource is None:
            raise ConfigResolutionError(f"Resource '{ref.resource}' does not exist")
        output = resource.created_resource
        if output is None:
            raise ConfigResolutionError(
                f"Resource '{ref.resource}' has not published a created resource"
            )
        if ref.field not in output:
            raise ConfigResolutionError(
                f"Created resource of '{ref.resource}' has no field '{ref.field}'"
            )
        _logger.debug("Resolved ${%s.%s}", ref.resource, ref.field)
        return output[ref.field]


__all__ = ["ConfigResolver", "TemplateRef", "parse_template"]
