"""Package description metadata read back from the committed artifact."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

from .errors import MalformedDescription
from .identifiers import PackageName, Version

DESCRIPTION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["name", "version"],
    "properties": {
        "name": {"type": "string"},
        "version": {"type": "string"},
        "summary": {"type": "string"},
        "repository": {"type": "string"},
        "license": {"type": "string"},
        "exposed-modules": {"type": "array", "items": {"type": "string"}},
        "native-modules": {"type": "boolean"},
        "dependencies": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    },
}

_VALIDATOR = Draft7Validator(DESCRIPTION_SCHEMA)


@dataclass
class Description:
    """Structured metadata for one published package version."""

    name: PackageName
    version: Version
    summary: str = ""
    repository: Optional[str] = None
    license: Optional[str] = None
    exposed_modules: List[str] = field(default_factory=list)
    native_modules: bool = False
    dependencies: Dict[str, str] = field(default_factory=dict)

    def to_facts(self) -> Dict[str, Any]:
        """Flatten into the facts mapping consumed by the publish policy."""
        return {
            "package_name": str(self.name),
            "author": self.name.author,
            "project": self.name.project,
            "version": str(self.version),
            "summary": self.summary,
            "repository": self.repository,
            "license": self.license,
            "exposed_modules": list(self.exposed_modules),
            "native_modules": self.native_modules,
            "dependencies": dict(self.dependencies),
        }


def parse_description(raw: bytes, path: Optional[str] = None) -> Description:
    """Parse description bytes into a Description.

    Raises:
        MalformedDescription: If the bytes are not JSON, fail the schema,
            or carry an invalid name or version.
    """
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedDescription(f"not valid JSON ({exc})", path=path) from exc

    errs = sorted(_VALIDATOR.iter_errors(data), key=lambda e: list(e.path))
    if errs:
        first = errs[0]
        where = "/".join(str(p) for p in first.path) or "<root>"
        raise MalformedDescription(f"invalid at '{where}': {first.message}", path=path)

    try:
        name = PackageName.parse(data["name"])
        version = Version.parse(data["version"])
    except ValueError as exc:
        raise MalformedDescription(str(exc), path=path) from exc

    return Description(
        name=name,
        version=version,
        summary=data.get("summary", ""),
        repository=data.get("repository"),
        license=data.get("license"),
        exposed_modules=list(data.get("exposed-modules", [])),
        native_modules=bool(data.get("native-modules", False)),
        dependencies=dict(data.get("dependencies", {})),
    )


def read_description(path: Path) -> Description:
    """Read and parse a description artifact from disk."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise MalformedDescription(f"cannot read description ({exc})", path=str(path)) from exc
    return parse_description(raw, path=str(path))
