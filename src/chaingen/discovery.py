"""Schema package discovery.

Walks a source tree and returns every directory holding .proto files as a
Package, keyed by the proto package its files declare. Each file is read
for the declarations later stages need: the package name, the Go import
path from `option go_package`, top-level messages, and the request types
of the `Msg` service, which become the package's transaction messages.

discover() returns every package of a tree. discover_modules() keeps only
the blockchain modules of a Go module, which is how dependency trees are
scanned.

Directories that are hidden, start with an underscore, or hold vendored or
test data are never entered.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from pathlib import Path

from chaingen import gomodule
from chaingen.exceptions import DiscoveryError, ManifestError
from chaingen.models import Msg, Package, ProtoFile
from chaingen.utils.logger import get_logger

logger = get_logger("discovery")

PROTO_EXT = ".proto"
MSG_SERVICE = "Msg"
SKIPPED_DIRS = {"node_modules", "vendor", "testdata"}

_LEXICAL_RE = re.compile(r'"(?:[^"\\\n]|\\.)*"|//[^\n]*|/\*.*?\*/', re.DOTALL)
_STRING_RE = re.compile(r'"(?:[^"\\]|\\.)*"')
_PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)
_GO_PACKAGE_RE = re.compile(r'option\s+go_package\s*=\s*"([^"]*)"\s*;')
_TOKEN_RE = re.compile(
    r"\b(?P<kind>message|service)\s+(?P<name>\w+)\s*\{"
    r"|\brpc\s+\w+\s*\(\s*(?:stream\s+)?(?P<request>[\w.]+)\s*\)"
    r"|(?P<open>\{)|(?P<close>\})"
)


def _skip_dir(name: str) -> bool:
    return name.startswith(".") or name.startswith("_") or name in SKIPPED_DIRS


def parse_proto(path: Path) -> ProtoFile | None:
    """Read the declarations of one .proto file.

    Returns:
        ProtoFile, or None when the file declares no package

    Raises:
        DiscoveryError: If the file cannot be read
    """
    try:
        source = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DiscoveryError(f"cannot read {path}: {e}", str(path)) from e

    # Drop comments, keeping string literals that may contain "//"
    source = _LEXICAL_RE.sub(lambda m: m.group(0) if m.group(0).startswith('"') else "", source)

    package_match = _PACKAGE_RE.search(source)
    if package_match is None:
        return None

    go_import_path = ""
    go_package_match = _GO_PACKAGE_RE.search(source)
    if go_package_match:
        # "example.com/foo/types;types" carries an alias after the semicolon
        go_import_path = go_package_match.group(1).split(";", 1)[0]

    # Blank out strings so braces inside option values do not skew depth
    body = _STRING_RE.sub('""', source)

    messages = []
    msg_rpc_types = []
    depth = 0
    service = None
    service_depth = 0

    for match in _TOKEN_RE.finditer(body):
        if match.group("open"):
            depth += 1
        elif match.group("close"):
            depth -= 1
            if service is not None and depth < service_depth:
                service = None
        elif match.group("kind"):
            if depth == 0:
                if match.group("kind") == "message":
                    messages.append(match.group("name"))
                else:
                    service = match.group("name")
                    service_depth = 1
            depth += 1
        elif match.group("request") and service == MSG_SERVICE and depth == service_depth:
            msg_rpc_types.append(match.group("request").lstrip("."))

    return ProtoFile(
        path=path,
        package=package_match.group(1),
        go_import_path=go_import_path,
        messages=tuple(messages),
        msg_rpc_types=tuple(msg_rpc_types),
    )


def _build_package(directory: Path, files: list[ProtoFile]) -> Package:
    namespaces = sorted({f.package for f in files})
    if len(namespaces) > 1:
        raise DiscoveryError(
            f"{directory} mixes proto packages: {', '.join(namespaces)}",
            str(directory),
            {"packages": namespaces},
        )
    namespace = namespaces[0]

    go_import_path = next((f.go_import_path for f in files if f.go_import_path), "")

    defined_in = {}
    for f in files:
        for message in f.messages:
            defined_in.setdefault(message, f.path)

    msgs = []
    seen = set()
    for f in files:
        for request in f.msg_rpc_types:
            # A dotted request type is fully qualified and may live in another package
            uri = request if "." in request else f"{namespace}.{request}"
            if uri in seen:
                continue
            seen.add(uri)
            name = uri.rsplit(".", 1)[-1]
            local = uri == f"{namespace}.{name}"
            file_path = defined_in.get(name, f.path) if local else f.path
            msgs.append(Msg(name=name, uri=uri, file_path=file_path))

    return Package(
        path=directory,
        namespace=namespace,
        go_import_path=go_import_path,
        files=tuple(files),
        msgs=tuple(msgs),
    )


def _scan(root: Path) -> Iterator[tuple[Path, list[ProtoFile]]]:
    """Yield each directory under root that holds declared .proto files."""
    if not root.is_dir():
        raise DiscoveryError(f"cannot scan {root}: not a directory", str(root))

    def on_error(error: OSError) -> None:
        raise DiscoveryError(f"cannot scan {error.filename}: {error.strerror}", str(error.filename)) from error

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames[:] = sorted(d for d in dirnames if not _skip_dir(d))

        proto_names = sorted(name for name in filenames if name.endswith(PROTO_EXT))
        if not proto_names:
            continue

        directory = Path(dirpath)
        files = [f for f in (parse_proto(directory / name) for name in proto_names) if f is not None]
        if not files:
            logger.debug(f"skipping {directory}: no package declaration")
            continue

        yield directory, files


def discover(root: str | Path) -> list[Package]:
    """Find every schema package under a source tree.

    Args:
        root: Source tree to scan (a project or a dependency's location)

    Returns:
        Packages in directory walk order

    Raises:
        DiscoveryError: If the tree cannot be read, or a directory declares
            more than one proto package
    """
    root = Path(root)
    packages = [_build_package(directory, files) for directory, files in _scan(root)]
    logger.debug(f"discovered {len(packages)} packages in {root}")
    return packages


def is_sdk_module(package: Package, module_path: str) -> bool:
    """Whether a package is a blockchain module of the Go module at module_path.

    Its generated Go code must live inside that Go module, and it must
    declare transaction messages.
    """
    in_module = package.go_import_path == module_path or package.go_import_path.startswith(module_path + "/")
    return in_module and bool(package.msgs)


def discover_modules(root: str | Path) -> list[Package]:
    """Find the blockchain modules a Go module defines.

    Unlike discover(), packages that belong to other Go modules (vendored
    third-party schemas, test fixtures) or carry no transaction messages are
    left out, and so are directories mixing proto packages. A tree without a
    go.mod defines no modules.

    Raises:
        DiscoveryError: If the tree or its go.mod cannot be read
    """
    root = Path(root)
    manifest = root / gomodule.MANIFEST_FILE
    if not manifest.is_file():
        if not root.is_dir():
            raise DiscoveryError(f"cannot scan {root}: not a directory", str(root))
        logger.debug(f"skipping {root}: not a Go module")
        return []

    try:
        module_path = gomodule.parse_at(root).module_path
    except ManifestError as e:
        raise DiscoveryError(f"cannot scan {root}: {e.message}", str(root)) from e

    packages = []
    for directory, files in _scan(root):
        if len({f.package for f in files}) > 1:
            logger.debug(f"skipping {directory}: mixes proto packages")
            continue
        package = _build_package(directory, files)
        if is_sdk_module(package, module_path):
            packages.append(package)
        else:
            logger.debug(f"skipping {package.namespace}: not a module of {module_path}")

    logger.debug(f"discovered {len(packages)} modules of {module_path} in {root}")
    return packages
