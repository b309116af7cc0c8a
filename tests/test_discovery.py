"""Tests for schema package discovery."""

import pytest

from chaingen.discovery import discover, discover_modules, is_sdk_module, parse_proto
from chaingen.exceptions import DiscoveryError, ErrorCategory
from tests.conftest import SDK, write_proto

BLOG_PROTO = """\
syntax = "proto3";

// The blog module.
package mychain.blog;

import "gogoproto/gogo.proto";
import "google/api/annotations.proto";

option go_package = "github.com/x/mychain/x/blog/types;types";

/* service Msg { rpc Ignored(MsgIgnored) returns (MsgIgnoredResponse); } */

service Query {
  rpc Post(QueryPostRequest) returns (QueryPostResponse) {
    option (google.api.http).get = "https://example.com/mychain/blog/post/{id}";
  }
}

service Msg {
  rpc CreatePost(MsgCreatePost) returns (MsgCreatePostResponse);
  rpc DeletePost(mychain.blog.MsgDeletePost) returns (MsgDeletePostResponse) {
    option deprecated = true;
  }
}

message MsgCreatePost {
  string creator = 1;
  message Nested {
    string inner = 1;
  }
}

message MsgCreatePostResponse {}
message MsgDeletePost { uint64 id = 1; }
message MsgDeletePostResponse {}
"""


class TestParseProto:
    def test_declarations(self, tmp_path):
        path = tmp_path / "tx.proto"
        path.write_text(BLOG_PROTO)

        proto = parse_proto(path)

        assert proto.package == "mychain.blog"
        assert proto.go_import_path == "github.com/x/mychain/x/blog/types"
        assert proto.messages == (
            "MsgCreatePost",
            "MsgCreatePostResponse",
            "MsgDeletePost",
            "MsgDeletePostResponse",
        )
        assert proto.msg_rpc_types == ("MsgCreatePost", "mychain.blog.MsgDeletePost")

    def test_no_package_declaration(self, tmp_path):
        path = tmp_path / "bare.proto"
        path.write_text('syntax = "proto3";\nmessage A {}\n')

        assert parse_proto(path) is None


class TestDiscover:
    def test_two_sibling_packages(self, tmp_path):
        write_proto(tmp_path / "proto" / "a" / "b" / "c", "c.proto", "a.b.c")
        write_proto(tmp_path / "proto" / "a" / "b" / "d", "d.proto", "a.b.d")

        packages = discover(tmp_path)

        assert sorted(p.name for p in packages) == ["c", "d"]
        assert sorted(p.namespace for p in packages) == ["a.b.c", "a.b.d"]

    def test_package_metadata(self, tmp_path):
        (tmp_path / "proto" / "blog").mkdir(parents=True)
        (tmp_path / "proto" / "blog" / "tx.proto").write_text(BLOG_PROTO)
        write_proto(tmp_path / "proto" / "blog", "genesis.proto", "mychain.blog")

        [package] = discover(tmp_path)

        assert package.path == tmp_path / "proto" / "blog"
        assert package.namespace == "mychain.blog"
        assert package.name == "blog"
        assert package.go_import_path == "github.com/x/mychain/x/blog/types"
        assert len(package.files) == 2
        assert [(m.name, m.uri) for m in package.msgs] == [
            ("MsgCreatePost", "mychain.blog.MsgCreatePost"),
            ("MsgDeletePost", "mychain.blog.MsgDeletePost"),
        ]
        assert package.msgs[0].file_path == tmp_path / "proto" / "blog" / "tx.proto"

    def test_skips_directories_without_schemas(self, tmp_path):
        (tmp_path / "x" / "empty").mkdir(parents=True)
        (tmp_path / "x" / "empty" / "README.md").write_text("nothing here")

        assert discover(tmp_path) == []

    @pytest.mark.parametrize("ignored", [".git", "node_modules", "vendor", "_build", "testdata"])
    def test_skips_non_source_directories(self, tmp_path, ignored):
        write_proto(tmp_path / ignored / "pkg", "a.proto", "ignored.pkg")
        write_proto(tmp_path / "proto" / "kept", "a.proto", "kept")

        assert [p.namespace for p in discover(tmp_path)] == ["kept"]

    def test_mixed_packages_in_one_directory(self, tmp_path):
        write_proto(tmp_path / "proto", "a.proto", "one")
        write_proto(tmp_path / "proto", "b.proto", "two")

        with pytest.raises(DiscoveryError, match="mixes proto packages"):
            discover(tmp_path)

    def test_missing_root(self, tmp_path):
        with pytest.raises(DiscoveryError) as exc_info:
            discover(tmp_path / "not-downloaded")

        assert exc_info.value.category is ErrorCategory.DISCOVERY
        assert exc_info.value.path == str(tmp_path / "not-downloaded")

    def test_msg_from_another_package(self, tmp_path):
        write_proto(
            tmp_path / "proto" / "blog",
            "tx.proto",
            "mychain.blog",
            msgs=["MsgCreatePost"],
        )
        (tmp_path / "proto" / "blog" / "legacy.proto").write_text(
            'syntax = "proto3";\n'
            "package mychain.blog;\n"
            "service Msg {\n"
            "  rpc Send(cosmos.bank.v1beta1.MsgSend) returns (Empty);\n"
            "  rpc Vote(.mychain.gov.MsgVote) returns (Empty);\n"
            "}\n"
        )

        [package] = discover(tmp_path)

        assert sorted((m.name, m.uri) for m in package.msgs) == [
            ("MsgCreatePost", "mychain.blog.MsgCreatePost"),
            ("MsgSend", "cosmos.bank.v1beta1.MsgSend"),
            ("MsgVote", "mychain.gov.MsgVote"),
        ]


class TestDiscoverModules:
    @pytest.fixture
    def dependency(self, tmp_path):
        """A Go module holding one blockchain module next to third-party and test schemas."""
        dep = tmp_path / "cosmos-sdk@v0.42.0"
        dep.mkdir()
        (dep / "go.mod").write_text(f"module {SDK}\n\ngo 1.15\n\ntool golang.org/x/tools/cmd/stringer\n")
        write_proto(dep / "proto" / "cosmos" / "bank", "tx.proto", "cosmos.bank.v1beta1",
                    f"{SDK}/x/bank/types", msgs=["MsgSend"])
        write_proto(dep / "proto" / "cosmos" / "params", "params.proto", "cosmos.params.v1beta1",
                    f"{SDK}/x/params/types")
        write_proto(dep / "third_party" / "proto" / "gogoproto", "gogo.proto", "gogoproto",
                    "github.com/gogo/protobuf/gogoproto")
        write_proto(dep / "third_party" / "proto" / "google" / "api", "http.proto", "google.api")
        write_proto(dep / "test", "thetest.proto", "test", msgs=["MsgTest"])
        write_proto(dep / "regen", "fork.proto", "regen.fork", f"{SDK}-fork/x/fork/types", msgs=["MsgFork"])
        write_proto(dep / "mixed", "a.proto", "one")
        write_proto(dep / "mixed", "b.proto", "two")
        return dep

    def test_keeps_only_modules_of_the_go_module(self, dependency):
        packages = discover_modules(dependency)

        assert [p.namespace for p in packages] == ["cosmos.bank.v1beta1"]

    def test_discover_still_returns_everything(self, dependency):
        with pytest.raises(DiscoveryError, match="mixes proto packages"):
            discover(dependency)

    def test_tree_without_go_mod(self, tmp_path):
        write_proto(tmp_path / "proto" / "blog", "tx.proto", "mychain.blog", "github.com/x/mychain/x/blog/types",
                    msgs=["MsgCreatePost"])

        assert discover_modules(tmp_path) == []

    def test_unreadable_go_mod(self, tmp_path):
        (tmp_path / "go.mod").write_text("go 1.16\n")

        with pytest.raises(DiscoveryError, match="no module declaration"):
            discover_modules(tmp_path)

    def test_missing_root(self, tmp_path):
        with pytest.raises(DiscoveryError):
            discover_modules(tmp_path / "not-downloaded")

    @pytest.mark.parametrize(
        "go_import_path,msgs,expected",
        [
            (f"{SDK}/x/bank/types", True, True),
            (SDK, True, True),
            (f"{SDK}/x/bank/types", False, False),
            (f"{SDK}-fork/x/bank/types", True, False),
            ("", True, False),
        ],
    )
    def test_is_sdk_module(self, tmp_path, go_import_path, msgs, expected):
        write_proto(tmp_path, "tx.proto", "cosmos.bank.v1beta1", go_import_path,
                    msgs=["MsgSend"] if msgs else ())
        [package] = discover(tmp_path)

        assert is_sdk_module(package, SDK) is expected
