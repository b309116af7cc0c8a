"""
Pytest configuration and shared test utilities.

Provides on-disk project fixtures and recording doubles for the external
tools, so generation tests never start a real protoc, Go or Node process.
"""

import textwrap
from pathlib import Path

import pytest

from chaingen.cmdrunner import CommandRunner
from chaingen.discovery import parse_proto
from chaingen.exceptions import DependencyNotFoundError
from chaingen.generator import OPENAPI_SPEC_FILE, Toolchain
from chaingen.models import Requirement
from chaingen.tools import find_proto_files
from chaingen.utils.config import ToolchainSettings, reset_config

SDK = "github.com/cosmos/cosmos-sdk"
APP_MODULE = "github.com/x/mychain"

# ===================================================================
# Project Factories
# ===================================================================


def write_proto(directory: Path, name: str, package: str, go_package: str = "", msgs=()) -> Path:
    """Write a .proto file declaring a package and an optional Msg service."""
    directory.mkdir(parents=True, exist_ok=True)
    lines = ['syntax = "proto3";', f"package {package};"]
    if go_package:
        lines.append(f'option go_package = "{go_package}";')
    if msgs:
        lines.append("service Msg {")
        for msg in msgs:
            lines.append(f"  rpc {msg[3:]}({msg}) returns ({msg}Response);")
        lines.append("}")
        for msg in msgs:
            lines.append(f"message {msg} {{\n  string creator = 1;\n}}")
            lines.append(f"message {msg}Response {{}}")
    else:
        lines.append("message Params {}")
    path = directory / name
    path.write_text("\n".join(lines) + "\n")
    return path


def write_go_mod(project: Path, requires: dict[str, str], replaces: str = "") -> Path:
    lines = [f"module {APP_MODULE}", "", "go 1.16", "", "require ("]
    lines += [f"\t{ident} {version}" for ident, version in requires.items()]
    lines += [")", ""]
    content = "\n".join(lines)
    if replaces:
        content += textwrap.dedent(replaces)
    path = project / "go.mod"
    path.write_text(content)
    return path


@pytest.fixture
def sdk_path(tmp_path):
    """A dependency tree shaped like the Cosmos SDK."""
    sdk = tmp_path / "modcache" / "cosmos-sdk@v0.42.0"
    write_proto(
        sdk / "proto" / "cosmos" / "bank" / "v1beta1",
        "tx.proto",
        "cosmos.bank.v1beta1",
        "github.com/cosmos/cosmos-sdk/x/bank/types",
        msgs=["MsgSend"],
    )
    (sdk / "third_party" / "proto" / "gogoproto").mkdir(parents=True)
    (sdk / "go.mod").write_text(f"module {SDK}\n\ngo 1.15\n")
    return sdk


@pytest.fixture
def project_path(tmp_path):
    """A blockchain app with one module, mychain.mymodule."""
    project = tmp_path / "mychain"
    project.mkdir()
    write_go_mod(project, {SDK: "v0.42.0"})
    write_proto(
        project / "proto" / "mymodule",
        "tx.proto",
        "mychain.mymodule",
        f"{APP_MODULE}/x/mymodule/types",
        msgs=["MsgCreatePost"],
    )
    return project


# ===================================================================
# Test Doubles
# ===================================================================


class FakeLocator:
    """Locates requirements from a fixed identifier -> path mapping."""

    def __init__(self, locations: dict[str, Path]):
        self.locations = locations
        self.calls = []

    async def locate(self, requirement: Requirement) -> Path:
        self.calls.append(requirement)
        if requirement.is_local:
            return Path(requirement.local_path)
        if requirement.identifier not in self.locations:
            raise DependencyNotFoundError(
                f"cannot locate {requirement}", requirement.identifier, requirement.version
            )
        return self.locations[requirement.identifier]


class RecordingRunner:
    """Records commands instead of running them."""

    def __init__(self, output: str = ""):
        self.output = output
        self.commands = []

    async def run(self, command, cwd=None, env=None) -> str:
        self.commands.append((list(command), cwd))
        return self.output


class FakeCompiler:
    """Writes one deterministic file per proto file and output flag."""

    def __init__(self, fail_on: set[str] | None = None):
        self.fail_on = fail_on or set()
        self.calls = []

    async def generate(self, workdir, proto_path, include_paths, outs):
        self.calls.append((Path(workdir), Path(proto_path), list(include_paths), list(outs)))
        files = find_proto_files(proto_path)
        namespace = parse_proto(files[0]).package
        if namespace in self.fail_on:
            raise RuntimeError(f"protoc failed for {namespace}")

        for out in outs:
            if out.startswith("--openapiv2_out"):
                (Path(workdir) / OPENAPI_SPEC_FILE).write_text(f'{{"swagger": "2.0", "package": "{namespace}"}}')
                continue
            for proto in files:
                declared = parse_proto(proto)
                target = Path(workdir) / declared.go_import_path
                target.mkdir(parents=True, exist_ok=True)
                suffix = ".pb.gw.go" if out.startswith("--grpc-gateway_out") else ".pb.go"
                (target / f"{proto.stem}{suffix}").write_text(f"// generated from {proto.name}\npackage types\n")


class FakeTypesGenerator:
    def __init__(self):
        self.calls = []

    async def generate(self, out_dir, types_name, proto_path, include_paths):
        self.calls.append((Path(out_dir), types_name, Path(proto_path), list(include_paths)))
        types_dir = Path(out_dir) / types_name
        types_dir.mkdir(parents=True, exist_ok=True)
        (types_dir / "index.js").write_text("export default {};\n")


class FakeRestGenerator:
    def __init__(self):
        self.calls = []

    async def generate(self, out_file, spec_path, module_name_index):
        spec = Path(spec_path).read_text()
        self.calls.append((Path(out_file), Path(spec_path), module_name_index))
        Path(out_file).write_text(f"// from {spec}\nexport class Api {{}}\n")


def make_toolchain(locations, compiler=None, types_generator=None, rest_generator=None) -> Toolchain:
    return Toolchain(
        runner=CommandRunner(),
        compiler=compiler or FakeCompiler(),
        types_generator=types_generator or FakeTypesGenerator(),
        rest_generator=rest_generator or FakeRestGenerator(),
        locator=FakeLocator(locations),
        go_command=["go"],
    )


@pytest.fixture
def offline_settings():
    """Settings that skip `go mod download`."""
    return ToolchainSettings.model_validate({"setup": {"download_dependencies": False}})


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Keep tests independent of any chaingen.yml on the machine."""
    monkeypatch.delenv("CHAINGEN_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()
