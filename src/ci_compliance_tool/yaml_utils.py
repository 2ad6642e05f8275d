from __future__ import annotations
"""YAML loading that keeps version-like scalars as written."""

from typing import Any

import yaml


_FLOAT_TAG = "tag:yaml.org,2002:float"
_INT_TAG = "tag:yaml.org,2002:int"


class VersionPreservingLoader(yaml.SafeLoader):
    """SafeLoader that keeps numeric scalars such as `1.20` as strings."""


VersionPreservingLoader.yaml_implicit_resolvers = {
    first: [(tag, pattern) for tag, pattern in resolvers if tag not in {_FLOAT_TAG, _INT_TAG}]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_yaml(content: str) -> Any:
    """Parse `content`; numbers come back as strings. Raises `yaml.YAMLError`."""
    return yaml.load(content, Loader=VersionPreservingLoader)  # noqa: S506 - SafeLoader subclass
