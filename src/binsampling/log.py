"""
Package logger for binsampling.

All diagnostics of the package (observable mismatches in plotting queries,
integrator non-convergence, evaluation traces at debug level) are emitted on
the ``"binsampling"`` logger defined here.
"""

import logging
import sys

logger = logging.getLogger("binsampling")

__all__ = ["logger", "setlevel", "set_color"]


class BlankLineFormatter(logging.Formatter):

    def format(self, record):
        if record.msg == "" and not record.args: # blank line
            return ""
        return super().format(record)

class _Ansi:
    RESET = "\033[0m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    GREEN = "\033[32m"
    CYAN = "\033[36m"
    MAGENTA = "\033[35m"

_DEFAULT_PALETTE = {
    logging.DEBUG: _Ansi.CYAN,
    logging.INFO: _Ansi.GREEN,
    logging.WARNING: _Ansi.YELLOW,
    logging.ERROR: _Ansi.RED,
    logging.CRITICAL: _Ansi.MAGENTA,
}

ufstring = "%(name)-3s: [%(levelname)-9s] %(asctime)s %(message)s"

# None -> auto (detect TTY), True/False -> explicit
_config: dict[str, bool | None] = {
    "colors_enabled": None,
}

_color_palette = dict(_DEFAULT_PALETTE)


class ColoredFormatter(BlankLineFormatter):
    """Formatter that colors the whole record according to its level."""

    def _colors_on(self) -> bool:
        enabled = _config.get("colors_enabled")
        if enabled is not None:
            return bool(enabled)
        isatty = getattr(sys.stdout, "isatty", None)
        return bool(isatty()) if callable(isatty) else False

    def format(self, record):
        base = super().format(record)
        if not self._colors_on():
            return base
        color = _color_palette.get(record.levelno, "")
        return f"{color}{base}{_Ansi.RESET}"


def _ensure_handler() -> logging.Handler:
    # avoid stacking stream handlers if the module is reloaded
    for h in logger.handlers:
        if isinstance(h, logging.StreamHandler):
            return h
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(ufstring))
    logger.addHandler(handler)
    return handler

logger.setLevel(logging.INFO)
_ensure_handler()


def setlevel(level: int | str = logging.INFO) -> None:
    """
    Set the level of the binsampling logger.

    Parameters
    ----------
    level : int or str, optional
        A :mod:`logging` level, either as an integer (``logging.DEBUG``) or
        by name (``"debug"``). Default is ``logging.INFO``.

    Raises
    ------
    ValueError
        If ``level`` is a string that does not name a logging level.
    """
    if isinstance(level, str):
        name = level.upper()
        if not isinstance(getattr(logging, name, None), int):
            raise ValueError(f"Unknown logging level: {level}")
        level = getattr(logging, name)
    logger.setLevel(level)


def set_color(enabled: bool | None = True, palette: dict[int, str] | None = None) -> None:
    """
    Enable or disable colored output and optionally override the palette.

    Parameters
    ----------
    enabled : bool or None, optional
        True to force colors on, False to force them off, None to
        auto-detect a TTY.
    palette : dict or None, optional
        Mapping from logging levels to ANSI color codes, overlaid on the
        default palette.
    """
    _config["colors_enabled"] = enabled

    if palette:
        _color_palette.clear()
        _color_palette.update(_DEFAULT_PALETTE)
        _color_palette.update(palette)

    for h in logger.handlers:
        if isinstance(h, logging.StreamHandler):
            h.setFormatter(ColoredFormatter(ufstring))
