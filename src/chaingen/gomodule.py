"""Go module manifest parsing and dependency resolution.

Reads a project's go.mod, applies its replace directives, and resolves every
direct requirement to the directory holding its source code, either a local
replacement path or the Go module cache.

Examples:
    Resolving a project's dependencies::

        modfile = parse_at(project_path)
        requirements = resolve_requirements(modfile, project_path)
        records = await resolve_dependencies(requirements, GoModuleLocator(runner))
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from chaingen.cmdrunner import CommandRunner
from chaingen.exceptions import (
    CommandError,
    DependencyNotFoundError,
    ManifestError,
    SetupError,
)
from chaingen.models import DependencyRecord, Requirement
from chaingen.utils.logger import get_logger

logger = get_logger("gomodule")

MANIFEST_FILE = "go.mod"

# Directives whose blocks carry nothing the resolver needs
_IGNORED_DIRECTIVES = {"go", "toolchain", "godebug", "exclude", "retract", "tool", "ignore"}
_BLOCK_DIRECTIVES = {"require", "replace"} | _IGNORED_DIRECTIVES


@dataclass(frozen=True)
class ModRequire:
    identifier: str
    version: str
    indirect: bool = False


@dataclass(frozen=True)
class ModReplace:
    """A replace directive. An empty new_version means new_path is a local directory."""

    old_path: str
    old_version: str
    new_path: str
    new_version: str


@dataclass
class ModFile:
    """Parsed go.mod contents."""

    module_path: str = ""
    requires: list[ModRequire] = field(default_factory=list)
    replaces: list[ModReplace] = field(default_factory=list)
    path: str = MANIFEST_FILE


def _unquote(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"`":
        return token[1:-1]
    return token


def _parse_require(tokens: list[str], indirect: bool, path: str, lineno: int) -> ModRequire:
    if len(tokens) != 2:
        raise ManifestError(f"{path}:{lineno}: usage: require module/path v1.2.3", path, lineno)
    return ModRequire(_unquote(tokens[0]), _unquote(tokens[1]), indirect)


def _parse_replace(tokens: list[str], path: str, lineno: int) -> ModReplace:
    if "=>" not in tokens:
        raise ManifestError(f"{path}:{lineno}: replace directive is missing '=>'", path, lineno)
    arrow = tokens.index("=>")
    old, new = tokens[:arrow], tokens[arrow + 1 :]
    if len(old) not in (1, 2) or len(new) not in (1, 2):
        raise ManifestError(
            f"{path}:{lineno}: usage: replace module/path [v1.2.3] => other/module v1.4 | ../local/dir",
            path,
            lineno,
        )
    return ModReplace(
        old_path=_unquote(old[0]),
        old_version=_unquote(old[1]) if len(old) == 2 else "",
        new_path=_unquote(new[0]),
        new_version=_unquote(new[1]) if len(new) == 2 else "",
    )


def parse(content: str, path: str = MANIFEST_FILE) -> ModFile:
    """Parse go.mod content.

    Args:
        content: File contents
        path: File name used in error messages

    Returns:
        Parsed ModFile

    Raises:
        ManifestError: On malformed directives
    """
    modfile = ModFile(path=path)
    block: str | None = None

    for lineno, raw_line in enumerate(content.splitlines(), start=1):
        line, _, comment = raw_line.partition("//")
        indirect = comment.strip() == "indirect" or comment.strip().startswith("indirect;")
        tokens = line.split()
        if not tokens:
            continue

        if block is not None:
            if tokens == [")"]:
                block = None
            elif block == "require":
                modfile.requires.append(_parse_require(tokens, indirect, path, lineno))
            elif block == "replace":
                modfile.replaces.append(_parse_replace(tokens, path, lineno))
            continue

        directive, args = tokens[0], tokens[1:]
        if args == ["("]:
            if directive not in _BLOCK_DIRECTIVES:
                raise ManifestError(f"{path}:{lineno}: unknown directive: {directive}", path, lineno)
            block = directive
            continue

        if directive == "module":
            if len(args) != 1:
                raise ManifestError(f"{path}:{lineno}: usage: module module/path", path, lineno)
            modfile.module_path = _unquote(args[0])
        elif directive == "require":
            modfile.requires.append(_parse_require(args, indirect, path, lineno))
        elif directive == "replace":
            modfile.replaces.append(_parse_replace(args, path, lineno))
        elif directive not in _IGNORED_DIRECTIVES:
            raise ManifestError(f"{path}:{lineno}: unknown directive: {directive}", path, lineno)

    if block is not None:
        raise ManifestError(f"{path}: unterminated {block} block", path)
    if not modfile.module_path:
        raise ManifestError(f"{path}: no module declaration", path)
    return modfile


def parse_at(project_path: str | Path) -> ModFile:
    """Read and parse the go.mod at the root of a project.

    Raises:
        ManifestError: If the file is missing, unreadable, or malformed
    """
    manifest = Path(project_path) / MANIFEST_FILE
    try:
        content = manifest.read_text()
    except OSError as e:
        raise ManifestError(f"cannot read {manifest}: {e}", str(manifest)) from e
    return parse(content, str(manifest))


def resolve_requirements(modfile: ModFile, project_path: str | Path) -> list[Requirement]:
    """Apply replace directives to the direct requirements of a manifest.

    Indirect requirements are skipped. A replacement with a version swaps in
    the new module path and version; one pointing at a local directory keeps
    the original identifier and records the absolute directory.

    Returns:
        Requirements in manifest order
    """
    project_path = Path(project_path)
    requirements = []

    for req in modfile.requires:
        if req.indirect:
            continue
        replacement = next(
            (
                rep
                for rep in modfile.replaces
                if rep.old_path == req.identifier and rep.old_version in ("", req.version)
            ),
            None,
        )
        if replacement is None:
            requirements.append(Requirement(req.identifier, req.version))
        elif replacement.new_version:
            requirements.append(Requirement(replacement.new_path, replacement.new_version))
        else:
            local = (project_path / replacement.new_path).resolve()
            requirements.append(Requirement(req.identifier, "", str(local)))

    return requirements


@runtime_checkable
class PackageLocator(Protocol):
    """Finds where a requirement's source code lives on disk."""

    async def locate(self, requirement: Requirement) -> Path: ...


class GoModuleLocator:
    """Locates requirements in the Go module cache via `go mod download -json`.

    Args:
        runner: Command runner
        go_command: Command prefix that starts the Go toolchain
        workdir: Directory the go command runs in (the project root)
    """

    def __init__(
        self,
        runner: CommandRunner,
        go_command: list[str] | None = None,
        workdir: str | Path | None = None,
    ):
        self.runner = runner
        self.go_command = go_command or ["go"]
        self.workdir = workdir

    async def locate(self, requirement: Requirement) -> Path:
        if requirement.is_local:
            path = Path(requirement.local_path)
            if not path.is_dir():
                raise DependencyNotFoundError(
                    f"local dependency {path} does not exist", requirement.identifier
                )
            return path

        command = list(self.go_command) + ["mod", "download", "-json", str(requirement)]
        try:
            output = await self.runner.run(command, cwd=self.workdir)
        except CommandError as e:
            raise DependencyNotFoundError(
                f"cannot locate {requirement}: {e.output.strip() or e.message}",
                requirement.identifier,
                requirement.version,
            ) from e

        try:
            info = json.loads(output)
        except json.JSONDecodeError as e:
            raise DependencyNotFoundError(
                f"cannot locate {requirement}: unexpected output from go mod download",
                requirement.identifier,
                requirement.version,
                {"output": output[:500]},
            ) from e

        directory = info.get("Dir")
        if not directory:
            raise DependencyNotFoundError(
                f"cannot locate {requirement}: {info.get('Error', 'module is not in the cache')}",
                requirement.identifier,
                requirement.version,
            )
        return Path(directory)


async def resolve_dependencies(
    requirements: list[Requirement], locator: PackageLocator
) -> list[DependencyRecord]:
    """Resolve requirements to on-disk locations.

    The result holds one record per distinct identifier, in first-seen order.
    Any lookup failure aborts the whole resolution.

    Raises:
        DependencyNotFoundError: If a requirement cannot be located
    """
    records = []
    seen = set()

    for requirement in requirements:
        if requirement.identifier in seen:
            continue
        seen.add(requirement.identifier)
        location = await locator.locate(requirement)
        records.append(DependencyRecord(requirement.identifier, requirement.version, location))

    logger.debug(f"resolved {len(records)} dependencies")
    return records


async def download(runner: CommandRunner, project_path: str | Path, go_command: list[str] | None = None) -> None:
    """Download the project's dependencies into the module cache.

    Raises:
        SetupError: If `go mod download` fails
    """
    command = list(go_command or ["go"]) + ["mod", "download"]
    try:
        await runner.run(command, cwd=project_path)
    except CommandError as e:
        raise SetupError(
            f"cannot download dependencies: {e.message}",
            {"project_path": str(project_path)},
        ) from e
