"""Environment variable helpers."""

from __future__ import annotations

import re
from collections.abc import Mapping

_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def expand_env_vars(text: str, env: Mapping[str, str]) -> str:
    """Replace ``${NAME}`` and ``$NAME`` with values from ``env``.

    Names missing from ``env`` are left untouched.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        if name in env:
            return env[name]
        return match.group(0)

    return _VAR_PATTERN.sub(_replace, text)


def merge_env(*layers: Mapping[str, str] | None) -> dict[str, str]:
    merged: dict[str, str] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged
