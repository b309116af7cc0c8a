"""Data models shared by the resolution, discovery and generation stages.

All records are immutable once produced. Paths are absolute unless stated
otherwise.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

# =============================================================================
# Dependency Models
# =============================================================================


@dataclass(frozen=True)
class Requirement:
    """A requirement as declared in the dependency manifest.

    Attributes:
        identifier: Module path (e.g. "github.com/cosmos/cosmos-sdk")
        version: Version constraint, empty for local replacements
        local_path: Absolute directory of a local replacement
    """

    identifier: str
    version: str = ""
    local_path: str = ""

    @property
    def is_local(self) -> bool:
        return bool(self.local_path)

    def __str__(self) -> str:
        return f"{self.identifier}@{self.version}" if self.version else self.identifier


@dataclass(frozen=True)
class DependencyRecord:
    """A declared dependency resolved to its on-disk location.

    Attributes:
        identifier: Module path
        version: Resolved version, empty for local replacements
        location: Absolute path of the dependency's source tree
    """

    identifier: str
    version: str
    location: Path


@dataclass(frozen=True, init=False)
class WellKnownRoot:
    """Schema roots expected inside a named dependency.

    Attributes:
        identifier: Module path of the dependency hosting the roots
        subpaths: Paths relative to the dependency's location, in priority order
    """

    identifier: str
    subpaths: tuple[str, ...]

    def __init__(self, identifier: str, *subpaths: str):
        object.__setattr__(self, "identifier", identifier)
        object.__setattr__(self, "subpaths", tuple(subpaths))


# =============================================================================
# Schema Models
# =============================================================================


@dataclass(frozen=True)
class ProtoFile:
    """What a single .proto file declares.

    Attributes:
        path: Absolute path of the file
        package: Declared proto package (dot-separated)
        go_import_path: Import path from `option go_package`, without alias
        messages: Top-level message names in declaration order
        msg_rpc_types: Request types of the `Msg` service RPCs, qualified names kept as written
    """

    path: Path
    package: str
    go_import_path: str = ""
    messages: tuple[str, ...] = ()
    msg_rpc_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class Msg:
    """A transaction message exposed by a package.

    Attributes:
        name: Message name (e.g. "MsgCreatePost")
        uri: Type URL path without the leading slash (e.g. "mychain.blog.MsgCreatePost")
        file_path: Defining .proto file
    """

    name: str
    uri: str
    file_path: Path


@dataclass(frozen=True)
class Package:
    """A discovered schema package.

    Attributes:
        path: Directory holding the package's .proto files
        namespace: Declared proto package (e.g. "mychain.mymodule")
        go_import_path: Go import path of the generated types, if declared
        files: Files that make up the package
        msgs: Transaction messages declared by the package
    """

    path: Path
    namespace: str
    go_import_path: str = ""
    files: tuple[ProtoFile, ...] = ()
    msgs: tuple[Msg, ...] = ()

    @property
    def name(self) -> str:
        """Short name, the last namespace segment."""
        return self.namespace.rsplit(".", 1)[-1]


# =============================================================================
# Generation Options
# =============================================================================


@dataclass
class GenerationOptions:
    """Target selection for a generation run.

    Attributes:
        go_module_path: Native backend binding. Relative path under the staging
            root whose contents are merged into the project (usually the
            project's Go module path).
        js_out: Script backend binding. Maps a package to the directory its
            client library is written to.
    """

    go_module_path: str | None = None
    js_out: Callable[[Package], str | Path] | None = field(default=None, repr=False)

    def validate(self) -> None:
        if not self.go_module_path and self.js_out is None:
            raise ValueError("at least one generation target must be selected (go or js)")
