"""perfconform.console -- terminal output.

Usage::

    from perfconform.console import make_console

    console = make_console("auto")  # "rich" | "plain" | "auto"
    console.info("Hello")
    console.table(["Col", "Val"], [["a", "1"]])

The returned backend is passed explicitly to whoever needs it.
"""

from __future__ import annotations

import sys

from perfconform.console._plain import PlainBackend
from perfconform.console._protocol import ConsoleProtocol
from perfconform.console._rich import RichBackend

BACKENDS = ("auto", "rich", "plain")


def make_console(backend: str = "auto") -> ConsoleProtocol:
    """Build a console backend.

    Args:
        backend: ``"rich"`` -- always use Rich.
                 ``"plain"`` -- always use plain text.
                 ``"auto"`` (default) -- Rich when stdout is a TTY, plain
                 otherwise.
    """
    if backend not in BACKENDS:
        msg = f"unknown console backend {backend!r}"
        raise ValueError(msg)
    if backend == "plain" or (backend == "auto" and not sys.stdout.isatty()):
        return PlainBackend()
    return RichBackend()


__all__ = ["BACKENDS", "ConsoleProtocol", "PlainBackend", "RichBackend", "make_console"]
