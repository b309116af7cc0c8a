"""Code generation for Cosmos SDK blockchain apps.

Generates Go code and JavaScript clients from the proto files of an app and
of every dependency that ships proto files.

Pipeline:
    1. setup: download dependencies, parse go.mod, locate every dependency
    2. Go: compile each of the app's packages into one staging directory, then
       merge the app's part of the output into its source tree
    3. JS: for the app and every dependency, discover packages and generate
       types, an OpenAPI spec, a REST client and the index.js wrapper for each
       package, all concurrently

Go generation always finishes before JS generation starts, because the JS
pipeline relies on the Go types already being present in the app.

Examples:
    Generating both targets::

        await generate(
            project_path,
            project_path / "proto",
            GenerationOptions(
                go_module_path="github.com/x/mychain",
                js_out=lambda pkg: project_path / "vue/src/store/generated" / pkg.namespace,
            ),
        )
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
import time
from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from chaingen import discovery, gomodule, templating
from chaingen.cmdrunner import CommandRunner
from chaingen.exceptions import ChainGenError, CopyError, GenerationError
from chaingen.gomodule import GoModuleLocator, PackageLocator
from chaingen.models import DependencyRecord, GenerationOptions, Package, WellKnownRoot
from chaingen.protopath import SDK_IMPORT, SDK_PROTO, SDK_PROTO_THIRD_PARTY, resolve_include_paths
from chaingen.taskgroup import FailFastGroup
from chaingen.tools import (
    Protobufjs,
    Protoc,
    RestClientGenerator,
    SchemaCompiler,
    SwaggerTypescriptApi,
    TypesGenerator,
)
from chaingen.utils.config import ToolchainSettings, get_settings
from chaingen.utils.logger import get_logger

logger = get_logger("generator")

PROTOC_OUTS = [
    "--gocosmos_out=plugins=interfacetype+grpc,Mgoogle/protobuf/any.proto=github.com/cosmos/cosmos-sdk/codec/types:.",
    "--grpc-gateway_out=logtostderr=true:.",
]
OPENAPI_OUTS = [
    "--openapiv2_out=logtostderr=true,allow_merge=true:.",
]

OPENAPI_SPEC_FILE = "apidocs.swagger.json"
TYPES_NAME = "types"
REST_FILE = "rest.js"
CLIENT_FILE = "index.js"

# Route segment holding the module name, as in /cosmos/bank/v1beta1/...
MODULE_NAME_INDEX = "2"

STAGING_PREFIX = "chaingen-"

T = TypeVar("T")


@dataclass
class Toolchain:
    """The external tools a generation run drives."""

    runner: CommandRunner
    compiler: SchemaCompiler
    types_generator: TypesGenerator
    rest_generator: RestClientGenerator
    locator: PackageLocator
    go_command: list[str]

    @classmethod
    def from_settings(cls, settings: ToolchainSettings, project_path: str | Path) -> Toolchain:
        runner = CommandRunner(max_concurrency=settings.generation.max_concurrency)
        tools = settings.tools
        return cls(
            runner=runner,
            compiler=Protoc(runner, tools.protoc),
            types_generator=Protobufjs(runner, tools.pbjs, tools.pbts),
            rest_generator=SwaggerTypescriptApi(runner, tools.sta),
            locator=GoModuleLocator(runner, tools.go, workdir=project_path),
            go_command=list(tools.go),
        )


async def _in_thread(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking call in a worker thread and wait for it to finish.

    Cancelling the caller does not abandon the call; the cancellation is
    re-raised once the call has returned.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
    cancelled = False
    while True:
        try:
            result = await asyncio.shield(future)
            break
        except asyncio.CancelledError:
            if future.cancelled():
                raise
            cancelled = True
    if cancelled:
        raise asyncio.CancelledError()
    return result


@asynccontextmanager
async def staging_directory() -> AsyncIterator[Path]:
    """A scratch directory owned by one invocation, removed on exit."""
    created: list[str] = []
    try:
        await _in_thread(lambda: created.append(tempfile.mkdtemp(prefix=STAGING_PREFIX)))
        yield Path(created[0])
    finally:
        if created:
            await _in_thread(shutil.rmtree, created[0], ignore_errors=True)


@contextmanager
def _stage(package: Package, stage: str) -> Iterator[None]:
    """Attach the package and stage to errors raised within."""
    try:
        yield
    except ChainGenError as e:
        e.technical_details.setdefault("package", package.namespace)
        e.technical_details.setdefault("stage", stage)
        raise
    except OSError as e:
        raise GenerationError(
            f"{stage} failed for {package.namespace}: {e}",
            {"package": package.namespace, "stage": stage, "path": str(package.path)},
        ) from e


def merge_tree(source: Path, destination: Path) -> None:
    """Copy source over destination, replacing files that exist in both.

    Raises:
        CopyError: If the copy fails
    """
    if not source.is_dir():
        raise CopyError(str(source), str(destination), f"{source} does not exist")
    try:
        shutil.copytree(source, destination, dirs_exist_ok=True)
    except (shutil.Error, OSError) as e:
        raise CopyError(str(source), str(destination), str(e)) from e


class Generator:
    """Generates code for an app and its dependencies.

    Args:
        project_path: Root of the app (holds go.mod)
        proto_path: The app's proto root
        include_paths: Extra include paths, searched last
        options: Which targets to generate
        toolchain: External tools to drive
        settings: Toolchain settings
    """

    def __init__(
        self,
        project_path: str | Path,
        proto_path: str | Path,
        include_paths: Iterable[str | Path],
        options: GenerationOptions,
        toolchain: Toolchain,
        settings: ToolchainSettings,
    ):
        self.project_path = Path(project_path).resolve()
        self.proto_path = Path(proto_path).resolve()
        self.include_paths = [Path(p).resolve() for p in include_paths]
        self.options = options
        self.toolchain = toolchain
        self.settings = settings
        self.deps: list[DependencyRecord] = []

    async def setup(self) -> None:
        """Make the app's dependencies available and resolve their locations.

        Raises:
            SetupError: If downloading dependencies or reading go.mod fails
            DependencyNotFoundError: If a dependency cannot be located
        """
        if self.settings.setup.download_dependencies:
            logger.info("Downloading dependencies")
            await gomodule.download(self.toolchain.runner, self.project_path, self.toolchain.go_command)

        modfile = await asyncio.to_thread(gomodule.parse_at, self.project_path)
        requirements = gomodule.resolve_requirements(modfile, self.project_path)
        self.deps = await gomodule.resolve_dependencies(requirements, self.toolchain.locator)
        logger.info(f"Resolved {len(self.deps)} dependencies of {modfile.module_path}")

    def resolve_include(self, *roots: WellKnownRoot) -> list[Path]:
        return resolve_include_paths(self.proto_path, self.deps, roots, self.include_paths)

    async def generate_go(self) -> None:
        """Generate Go code for the app's own packages.

        Every package is compiled into one staging directory; only after all
        of them succeed is the part under the Go module path merged into the
        app's source tree.
        """
        include_paths = self.resolve_include(WellKnownRoot(SDK_IMPORT, SDK_PROTO, SDK_PROTO_THIRD_PARTY))

        packages = await asyncio.to_thread(discovery.discover, self.project_path)
        if not packages:
            logger.warning(f"No proto packages found in {self.project_path}")
            return

        async with staging_directory() as staging:
            for package in packages:
                logger.debug(f"Generating Go code for {package.namespace}")
                with _stage(package, "go"):
                    await self.toolchain.compiler.generate(staging, package.path, include_paths, PROTOC_OUTS)

            generated = staging / self.options.go_module_path
            await asyncio.to_thread(merge_tree, generated, self.project_path)

        logger.info(f"Generated Go code for {len(packages)} packages")

    async def generate_package_js(
        self,
        package: Package,
        js_include_paths: list[Path],
        openapi_include_paths: list[Path],
    ) -> None:
        """Generate the JS client of one package.

        Writes types/, rest.js and index.js into the package's output
        directory. Output written before a failing step is left in place.
        """
        out = Path(self.options.js_out(package))
        if not out.is_absolute():
            out = self.project_path / out

        logger.debug(f"Generating JS client for {package.namespace} into {out}")

        with _stage(package, "types"):
            await asyncio.to_thread(out.mkdir, parents=True, exist_ok=True)
            await self.toolchain.types_generator.generate(out, TYPES_NAME, package.path, js_include_paths)

        async with staging_directory() as staging:
            with _stage(package, "openapi"):
                await self.toolchain.compiler.generate(staging, package.path, openapi_include_paths, OPENAPI_OUTS)

            with _stage(package, "rest"):
                await self.toolchain.rest_generator.generate(
                    out / REST_FILE, staging / OPENAPI_SPEC_FILE, MODULE_NAME_INDEX
                )

        with _stage(package, "client"):
            await asyncio.to_thread(
                templating.write_client,
                package,
                out / CLIENT_FILE,
                templating.TYPES_PATH,
                templating.REST_PATH,
            )

    def source_paths(self) -> list[Path]:
        """The app followed by every dependency location, without repeats."""
        paths = []
        seen = set()
        for path in [self.project_path] + [dep.location for dep in self.deps]:
            key = os.path.normpath(path)
            if key not in seen:
                seen.add(key)
                paths.append(Path(path))
        return paths

    async def generate_js(self) -> None:
        """Generate JS clients for packages of the app and all dependencies.

        Every source path is scanned concurrently, and every package found is
        generated concurrently. The first failure cancels everything else.
        Dependencies contribute only the blockchain modules of their own Go
        module; the app contributes every package it holds.
        """
        js_include_paths = self.resolve_include(WellKnownRoot(SDK_IMPORT, SDK_PROTO))
        openapi_include_paths = self.resolve_include(
            WellKnownRoot(SDK_IMPORT, SDK_PROTO, SDK_PROTO_THIRD_PARTY)
        )

        async def generate_source(source_path: Path) -> int:
            if source_path == self.project_path:
                packages = await asyncio.to_thread(discovery.discover, source_path)
            else:
                packages = await asyncio.to_thread(discovery.discover_modules, source_path)

            group = FailFastGroup(f"packages of {source_path}")
            for package in packages:
                group.spawn(self.generate_package_js(package, js_include_paths, openapi_include_paths))
            await group.wait()
            return len(packages)

        group = FailFastGroup("source paths")
        tasks = [group.spawn(generate_source(path)) for path in self.source_paths()]
        await group.wait()

        total = sum(task.result() for task in tasks)
        logger.info(f"Generated JS clients for {total} packages")

    async def run(self) -> None:
        start = time.perf_counter()
        await self.setup()

        if self.options.go_module_path:
            logger.key_info("Generating Go code")
            await self.generate_go()

        if self.options.js_out is not None:
            logger.key_info("Generating JS clients")
            await self.generate_js()

        logger.timing(f"Code generation took {time.perf_counter() - start:.2f}s")


async def generate(
    project_path: str | Path,
    proto_path: str | Path,
    options: GenerationOptions,
    include_paths: Iterable[str | Path] = (),
    toolchain: Toolchain | None = None,
    settings: ToolchainSettings | None = None,
) -> None:
    """Generate code from an app's proto files.

    Args:
        project_path: Root of the app (holds go.mod)
        proto_path: The app's proto root, first on the include path
        options: Targets to generate; at least one must be set
        include_paths: Extra include paths, searched after the SDK's roots
        toolchain: External tools; built from settings when omitted
        settings: Toolchain settings; loaded from configuration when omitted

    Raises:
        ValueError: If no target is selected
        ChainGenError: On the first setup, resolution, discovery or
            generation failure
    """
    options.validate()
    settings = settings or get_settings()
    toolchain = toolchain or Toolchain.from_settings(settings, Path(project_path).resolve())

    generator = Generator(project_path, proto_path, include_paths, options, toolchain, settings)
    try:
        await generator.run()
    except ChainGenError as e:
        logger.error(e.message)
        raise
    logger.success("Code generation completed")
