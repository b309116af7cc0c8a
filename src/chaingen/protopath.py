"""Include path resolution for the schema compiler.

The final include path list is ordered as:

1. the project's own proto root
2. well-known roots inside dependencies, in the order they were requested
3. extra include paths supplied by the caller

protoc resolves imports against the first root that contains a file, so
this order decides which copy of a schema wins.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from chaingen.exceptions import MissingDependencyError
from chaingen.models import DependencyRecord, WellKnownRoot

SDK_IMPORT = "github.com/cosmos/cosmos-sdk"
SDK_PROTO = "proto"
SDK_PROTO_THIRD_PARTY = "third_party/proto"


def resolve_dependency_paths(
    records: Iterable[DependencyRecord], roots: Iterable[WellKnownRoot]
) -> list[Path]:
    """Map well-known roots to absolute paths inside resolved dependencies.

    Raises:
        MissingDependencyError: If a root names a dependency that was not resolved
    """
    by_identifier = {}
    for record in records:
        by_identifier.setdefault(record.identifier, record)

    paths = []
    for root in roots:
        record = by_identifier.get(root.identifier)
        if record is None:
            raise MissingDependencyError(root.identifier)
        paths.extend(Path(record.location) / subpath for subpath in root.subpaths)
    return paths


def resolve_include_paths(
    proto_path: str | Path,
    records: Iterable[DependencyRecord],
    roots: Iterable[WellKnownRoot] = (),
    extra_paths: Iterable[str | Path] = (),
) -> list[Path]:
    """Assemble the ordered, duplicate-free include path list.

    Args:
        proto_path: The project's proto root, always first
        records: Resolved dependencies
        roots: Well-known roots to look up in the dependencies
        extra_paths: Caller-supplied include paths, appended last

    Returns:
        Include paths; a directory listed twice keeps its first position

    Raises:
        MissingDependencyError: If a root names a dependency that was not resolved
    """
    ordered = [Path(proto_path)]
    ordered += resolve_dependency_paths(records, roots)
    ordered += [Path(p) for p in extra_paths]

    paths = []
    seen = set()
    for path in ordered:
        key = os.path.normpath(path)
        if key in seen:
            continue
        seen.add(key)
        paths.append(path)
    return paths
