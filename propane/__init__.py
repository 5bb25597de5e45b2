"""
propane - generators and streams written in direct style.

Write a function with ``yield``, ``try_`` and (for ``async def``) ``await``;
``@generator`` rewrites it into a lazily driven iterator or poll stream.

Example:
    >>> from propane import generator, try_, Ok, Result
    >>>
    >>> @generator
    ... def parse_all(lines) -> Result[int]:
    ...     for line in lines:
    ...         value = try_(parse(line))   # stops at the first Err
    ...         yield Ok(value)
    >>>
    >>> @generator
    ... async def fetch_all(urls) -> bytes:
    ...     for url in urls:
    ...         yield await fetch(url)
"""

from loguru import logger

from propane.config import Settings, current_settings
from propane.decorators import async_gen, async_gen_move, gen, gen_move, generator
from propane.errors import ConfigurationError, ShapeError, TransformError
from propane.expand import ExpansionResult, expand_source
from propane.poll import ENDED, PENDING, Context, Poll, Pollable, Ready, Stream
from propane.result import NOTHING, Err, Maybe, Nothing, Ok, Result, Some
from propane.runtime import GenIter, GenStream, try_
from propane.signature import Borrows, Throws

# Library records stay quiet unless PROPANE_DEBUG is set or the caller
# enables them with ``logger.enable("propane")``.
if not current_settings().debug:
    logger.disable("propane")

__all__ = [
    # Entry points
    "generator",
    "gen",
    "gen_move",
    "async_gen",
    "async_gen_move",
    "try_",
    "expand_source",
    "ExpansionResult",
    # Adapters and poll protocol
    "GenIter",
    "GenStream",
    "Stream",
    "Context",
    "Poll",
    "Pollable",
    "Ready",
    "PENDING",
    "ENDED",
    # Signature metadata
    "Borrows",
    "Throws",
    # Results
    "Result",
    "Ok",
    "Err",
    "Maybe",
    "Some",
    "Nothing",
    "NOTHING",
    # Errors and settings
    "TransformError",
    "ShapeError",
    "ConfigurationError",
    "Settings",
    "current_settings",
]
