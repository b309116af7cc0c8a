"""Client wrapper rendering.

Renders the index.js wrapper that ties a package's generated types and REST
client together behind txClient() and queryClient(). The Jinja2 environment
and the parsed template are built once per process on first use and only
read afterwards, so concurrent generation tasks can share them.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, Template, select_autoescape

from chaingen.models import Package

CLIENT_TEMPLATE = "client.js.j2"
TYPES_PATH = "./types"
REST_PATH = "./rest"

_WORD_SPLIT_RE = re.compile(r"[\s_\-.]+")


def to_lower_camel(value: str) -> str:
    """Convert an identifier to lowerCamelCase.

    Examples:
        >>> to_lower_camel("MsgCreatePost")
        'msgCreatePost'
        >>> to_lower_camel("msg_create_post")
        'msgCreatePost'
    """
    words = [w for w in _WORD_SPLIT_RE.split(value) if w]
    if not words:
        return ""
    first = words[0]
    first = first.lower() if first.isupper() else first[0].lower() + first[1:]
    return first + "".join(w[0].upper() + w[1:] for w in words[1:])


def _get_template_root() -> Path:
    import chaingen.templates

    return Path(chaingen.templates.__file__).parent


@lru_cache(maxsize=1)
def get_environment() -> Environment:
    """The shared Jinja2 environment."""
    env = Environment(
        loader=FileSystemLoader(str(_get_template_root())),
        autoescape=select_autoescape(["html", "xml"]),
        keep_trailing_newline=True,
    )
    env.filters["camel_case"] = to_lower_camel
    return env


@lru_cache(maxsize=1)
def get_client_template() -> Template:
    """The parsed client wrapper template."""
    return get_environment().get_template(CLIENT_TEMPLATE)


def render_client(package: Package, types_path: str = TYPES_PATH, rest_path: str = REST_PATH) -> str:
    """Render the client wrapper for a package."""
    return get_client_template().render(package=package, types_path=types_path, rest_path=rest_path)


def write_client(
    package: Package,
    output_path: str | Path,
    types_path: str = TYPES_PATH,
    rest_path: str = REST_PATH,
) -> Path:
    """Render the client wrapper into output_path, replacing any existing file.

    Raises:
        OSError: If the file cannot be written
    """
    output_path = Path(output_path)
    rendered = render_client(package, types_path, rest_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(rendered)
    return output_path
