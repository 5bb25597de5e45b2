"""
Environment-driven settings.

``PROPANE_DEBUG``     log the rewritten source of every expanded item.
``PROPANE_FALLIBLE``  enable the ``throws`` option of ``@generator``.

Both accept ``1``, ``true`` or ``yes`` (case-insensitive). Settings are read
at decoration time, so flipping a variable affects items decorated later.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_TRUTHY = ("1", "true", "yes")


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    debug: bool = False
    fallible: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        if environ is None:
            environ = os.environ
        return cls(
            debug=_flag(environ, "PROPANE_DEBUG"),
            fallible=_flag(environ, "PROPANE_FALLIBLE"),
        )


def current_settings() -> Settings:
    return Settings.from_env()


__all__ = ["Settings", "current_settings"]
