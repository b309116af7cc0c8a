"""External code generation tools.

Each tool the orchestrator drives is described by a Protocol with one real
implementation that shells out through a CommandRunner. The Protocols use
duck typing, so tests can substitute recording doubles without starting any
process.

Tools:
    SchemaCompiler: protoc with output plugins selected by flags
    TypesGenerator: protobufjs static module + typings for the script backend
    RestClientGenerator: REST client synthesis from an OpenAPI document
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol, runtime_checkable

from chaingen.cmdrunner import CommandRunner
from chaingen.exceptions import GenerationError


@runtime_checkable
class SchemaCompiler(Protocol):
    """Compiles the .proto files of one package directory.

    Output is written relative to workdir, as selected by the out flags
    (e.g. "--grpc-gateway_out=logtostderr=true:.").
    """

    async def generate(
        self,
        workdir: Path,
        proto_path: Path,
        include_paths: list[Path],
        outs: list[str],
    ) -> None: ...


@runtime_checkable
class TypesGenerator(Protocol):
    """Generates script-backend types for one package into out_dir/types_name."""

    async def generate(
        self,
        out_dir: Path,
        types_name: str,
        proto_path: Path,
        include_paths: list[Path],
    ) -> None: ...


@runtime_checkable
class RestClientGenerator(Protocol):
    """Writes a REST client file generated from an OpenAPI document.

    module_name_index selects which path segment of the API routes names
    the package.
    """

    async def generate(self, out_file: Path, spec_path: Path, module_name_index: str) -> None: ...


def find_proto_files(proto_path: Path) -> list[Path]:
    """List the .proto files of a package directory, sorted."""
    return sorted(p for p in Path(proto_path).glob("*.proto") if p.is_file())


class Protoc:
    """protoc invoked once per output flag.

    Args:
        runner: Command runner
        command: Command prefix that starts protoc
    """

    def __init__(self, runner: CommandRunner, command: list[str] | None = None):
        self.runner = runner
        self.command = command or ["protoc"]

    async def generate(
        self,
        workdir: Path,
        proto_path: Path,
        include_paths: list[Path],
        outs: list[str],
    ) -> None:
        files = await asyncio.to_thread(find_proto_files, proto_path)
        if not files:
            raise GenerationError(f"no proto files found in {proto_path}", {"path": str(proto_path)})

        base = list(self.command)
        for include in include_paths:
            base += ["-I", str(include)]

        for out in outs:
            await self.runner.run(base + [out] + [str(f) for f in files], cwd=workdir)


class Protobufjs:
    """protobufjs CLI: pbjs emits an ES6 static module, pbts its typings.

    The generated module lands in out_dir/<types_name>/index.js so it can be
    imported as "./<types_name>".
    """

    def __init__(
        self,
        runner: CommandRunner,
        pbjs: list[str] | None = None,
        pbts: list[str] | None = None,
    ):
        self.runner = runner
        self.pbjs = pbjs or ["pbjs"]
        self.pbts = pbts or ["pbts"]

    async def generate(
        self,
        out_dir: Path,
        types_name: str,
        proto_path: Path,
        include_paths: list[Path],
    ) -> None:
        files = await asyncio.to_thread(find_proto_files, proto_path)
        if not files:
            raise GenerationError(f"no proto files found in {proto_path}", {"path": str(proto_path)})

        types_dir = Path(out_dir) / types_name
        await asyncio.to_thread(types_dir.mkdir, parents=True, exist_ok=True)
        module_file = types_dir / "index.js"

        command = list(self.pbjs) + ["-t", "static-module", "-w", "es6", "-r", types_name]
        for include in include_paths:
            command += ["-p", str(include)]
        command += ["-o", str(module_file)] + [str(f) for f in files]
        await self.runner.run(command)

        await self.runner.run(list(self.pbts) + ["-o", str(types_dir / "index.d.ts"), str(module_file)])


class SwaggerTypescriptApi:
    """swagger-typescript-api producing a single JavaScript REST client."""

    def __init__(self, runner: CommandRunner, command: list[str] | None = None):
        self.runner = runner
        self.command = command or ["swagger-typescript-api"]

    async def generate(self, out_file: Path, spec_path: Path, module_name_index: str) -> None:
        out_file = Path(out_file)
        await asyncio.to_thread(out_file.parent.mkdir, parents=True, exist_ok=True)
        await self.runner.run(
            list(self.command)
            + [
                "-p", str(spec_path),
                "-o", str(out_file.parent),
                "-n", out_file.name,
                "--js",
                "--module-name-index", module_name_index,
            ]
        )
