"""chaingen exception hierarchy.

All exceptions inherit from ChainGenError and carry an ErrorCategory that
tells the caller at which stage of a generation run the failure happened.
None of them are retried; every failure is surfaced to the top-level caller.
"""

from enum import Enum


class ErrorCategory(Enum):
    """Stage at which a generation run failed.

    Attributes:
        SETUP: Manifest unreadable or dependency download failed
        RESOLUTION: A required dependency could not be located on disk
        DISCOVERY: A source tree could not be scanned
        GENERATION: An external tool or the merge step failed
    """

    SETUP = "setup"
    RESOLUTION = "resolution"
    DISCOVERY = "discovery"
    GENERATION = "generation"


class ChainGenError(Exception):
    """Base exception for all chaingen errors.

    Attributes:
        message: Human-readable error description
        category: Stage at which the error occurred
        technical_details: Additional debugging information
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        technical_details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.technical_details = technical_details or {}


# === SETUP category ===


class SetupError(ChainGenError):
    """Project setup failure (e.g. dependency download)."""

    def __init__(self, message: str, technical_details: dict | None = None) -> None:
        super().__init__(message, ErrorCategory.SETUP, technical_details)


class ManifestError(SetupError):
    """The dependency manifest is missing or cannot be parsed.

    Raised with the manifest path and, for syntax errors, the offending line.
    """

    def __init__(
        self,
        message: str,
        manifest_path: str | None = None,
        line: int | None = None,
    ) -> None:
        details = {}
        if manifest_path:
            details["manifest_path"] = manifest_path
        if line is not None:
            details["line"] = line
        super().__init__(message, details)
        self.manifest_path = manifest_path
        self.line = line


# === RESOLUTION category ===


class DependencyNotFoundError(ChainGenError):
    """A declared dependency has no location in the package cache."""

    def __init__(
        self,
        message: str,
        identifier: str,
        version: str = "",
        technical_details: dict | None = None,
    ) -> None:
        details = technical_details or {}
        details["identifier"] = identifier
        details["version"] = version
        super().__init__(message, ErrorCategory.RESOLUTION, details)
        self.identifier = identifier
        self.version = version


class MissingDependencyError(ChainGenError):
    """A structurally required dependency is not declared by the project.

    Raised when a well-known schema root is requested for an identifier the
    project does not depend on.
    """

    def __init__(self, identifier: str) -> None:
        super().__init__(
            f"required dependency not present: {identifier}",
            ErrorCategory.RESOLUTION,
            {"identifier": identifier},
        )
        self.identifier = identifier


# === DISCOVERY category ===


class DiscoveryError(ChainGenError):
    """A source tree could not be scanned for schema packages."""

    def __init__(self, message: str, path: str, technical_details: dict | None = None) -> None:
        details = technical_details or {}
        details["path"] = path
        super().__init__(message, ErrorCategory.DISCOVERY, details)
        self.path = path


# === GENERATION category ===


class GenerationError(ChainGenError):
    """A generation stage failed for a package."""

    def __init__(self, message: str, technical_details: dict | None = None) -> None:
        super().__init__(message, ErrorCategory.GENERATION, technical_details)


class CommandError(GenerationError):
    """An external tool exited with a non-zero status.

    The captured output is kept so that the tool's own diagnostics reach
    the user.
    """

    def __init__(
        self,
        command: list[str],
        returncode: int,
        output: str = "",
        workdir: str | None = None,
    ) -> None:
        message = f"{command[0]} exited with status {returncode}"
        if output.strip():
            message = f"{message}:\n{output.strip()}"
        super().__init__(
            message,
            {"command": command, "returncode": returncode, "workdir": workdir},
        )
        self.command = command
        self.returncode = returncode
        self.output = output
        self.workdir = workdir


class CopyError(GenerationError):
    """Merging staged output into the destination tree failed."""

    def __init__(self, source: str, destination: str, reason: str) -> None:
        super().__init__(
            f"cannot copy path: {reason}",
            {"source": source, "destination": destination},
        )
        self.source = source
        self.destination = destination
