"""chaingen - code generation for Cosmos SDK blockchain apps.

Turns the proto files of an app, and of every dependency that ships proto
files, into Go code and JavaScript client libraries.

Architecture:
- gomodule: go.mod parsing and dependency resolution
- protopath: include path resolution for the schema compiler
- discovery: schema package discovery
- tools: external generator capabilities (protoc, protobufjs, REST client)
- taskgroup: fail-fast concurrent task groups
- templating: the index.js client wrapper
- generator: the generation pipeline
"""

from .exceptions import (
    ChainGenError,
    CommandError,
    CopyError,
    DependencyNotFoundError,
    DiscoveryError,
    ErrorCategory,
    GenerationError,
    ManifestError,
    MissingDependencyError,
    SetupError,
)
from .generator import Generator, Toolchain, generate
from .models import (
    DependencyRecord,
    GenerationOptions,
    Msg,
    Package,
    ProtoFile,
    Requirement,
    WellKnownRoot,
)

__version__ = "0.1.0"

__all__ = [
    # Pipeline
    "generate",
    "Generator",
    "Toolchain",
    # Models
    "DependencyRecord",
    "GenerationOptions",
    "Msg",
    "Package",
    "ProtoFile",
    "Requirement",
    "WellKnownRoot",
    # Errors
    "ChainGenError",
    "CommandError",
    "CopyError",
    "DependencyNotFoundError",
    "DiscoveryError",
    "ErrorCategory",
    "GenerationError",
    "ManifestError",
    "MissingDependencyError",
    "SetupError",
]
