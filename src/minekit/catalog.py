"""Resource catalog loader with schema validation."""

from __future__ import annotations

import importlib.resources
import json
import logging
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pydantic import ValidationError

from .exceptions import CatalogError
from .models import ResourceCatalog, ResourceDescriptor, ResourceGroup

logger = logging.getLogger(__name__)

CATALOG_RESOURCE = "catalog.yaml"
SCHEMA_RESOURCE = "catalog.schema.json"


def _read_bundled(name: str) -> str:
    return importlib.resources.files("minekit").joinpath("data", name).read_text(
        encoding="utf-8",
    )


def _join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


def load_catalog_schema() -> dict[str, Any]:
    """Load the bundled catalog JSON schema."""
    try:
        return json.loads(_read_bundled(SCHEMA_RESOURCE))
    except (json.JSONDecodeError, OSError) as e:
        msg = f"Failed to load catalog schema: {e}"
        raise CatalogError(msg) from e


def load_catalog(
    path: Path | None = None,
    source_base: str | None = None,
) -> ResourceCatalog:
    """Load and validate a resource catalog.

    Args:
        path: Catalog YAML file, defaults to the bundled catalog
        source_base: Override for the catalog's source base URL

    Returns:
        Validated catalog with every descriptor expanded

    Raises:
        CatalogError: If the catalog cannot be read or fails validation
    """
    try:
        if path is None:
            text = _read_bundled(CATALOG_RESOURCE)
        else:
            text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Failed to read catalog file: {e}"
        raise CatalogError(msg, details={"path": str(path)}) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        msg = f"Failed to parse catalog YAML: {e}"
        raise CatalogError(msg) from e

    return build_catalog(data, source_base=source_base)


def build_catalog(
    data: Any,
    source_base: str | None = None,
) -> ResourceCatalog:
    """Validate raw catalog data and expand it into descriptors."""
    try:
        jsonschema.validate(data, load_catalog_schema())
    except jsonschema.ValidationError as e:
        msg = f"Catalog schema validation failed: {e.message}"
        raise CatalogError(
            msg,
            details={"path": list(e.absolute_path)},
        ) from e

    base = (source_base or data["source_base"]).rstrip("/")
    groups = [
        _build_group(name, spec, base) for name, spec in data["groups"].items()
    ]

    try:
        catalog = ResourceCatalog(
            version=data["version"],
            source_base=base,
            resource_groups=groups,
        )
    except ValidationError as e:
        msg = f"Catalog validation failed: {e}"
        raise CatalogError(msg) from e

    _check_unique(catalog)
    logger.debug(
        "Loaded catalog %s with %d resources",
        catalog.version,
        len(catalog.descriptors()),
    )
    return catalog


def _build_group(name: str, spec: dict[str, Any], base: str) -> ResourceGroup:
    source_prefix = spec.get("source", "")
    resources: list[ResourceDescriptor] = []

    try:
        for item in spec.get("items", []):
            resources.append(
                ResourceDescriptor(
                    group=name,
                    name=item["name"],
                    source_locator=f"{base}/{_join(source_prefix, item['name'])}",
                    relative_dest_path=item["name"],
                    optional=item.get("optional", False),
                    command=item.get("command"),
                    summary=item.get("summary"),
                ),
            )

        # A skill's primary file is required; companions are best effort
        for skill in spec.get("skills", []):
            files = [(skill["primary"], False)]
            files += [(c, True) for c in skill.get("companions", [])]
            for filename, optional in files:
                relative = _join(skill["name"], filename)
                resources.append(
                    ResourceDescriptor(
                        group=name,
                        name=relative,
                        source_locator=f"{base}/{_join(source_prefix, relative)}",
                        relative_dest_path=relative,
                        optional=optional,
                    ),
                )

        return ResourceGroup(name=name, dest=spec["dest"], resources=resources)
    except ValidationError as e:
        msg = f"Invalid resource in group '{name}': {e}"
        raise CatalogError(msg, details={"group": name}) from e


def _check_unique(catalog: ResourceCatalog) -> None:
    seen: set[tuple[str, str]] = set()
    for descriptor in catalog.descriptors():
        if descriptor.key in seen:
            msg = f"Duplicate resource {descriptor.group}/{descriptor.name}"
            raise CatalogError(msg, details={"key": list(descriptor.key)})
        seen.add(descriptor.key)
