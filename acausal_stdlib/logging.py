# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.

import functools
import logging
import time
from logging import CRITICAL, DEBUG, ERROR, INFO, WARNING

BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
BLUE = "\033[34m"
CYAN = "\033[36m"
LIGHTGREY = "\033[37m"
YELLOW = "\033[33m"
RESET = "\033[0m"

__all__ = [
    "logger",
    "set_log_level",
    "set_file_handler",
    "set_stream_handler",
    "unset_stream_handler",
    "scope_logging",
    "logdata",
    "log",
    "debug",
    "info",
    "warning",
    "error",
    "critical",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

packages = [__package__]


class ColorFormatter(logging.Formatter):
    """Terminal formatter, appends the structured extras of a record."""

    _colors = ((ERROR, RED), (WARNING, YELLOW), (INFO, GREEN), (DEBUG, BLUE))

    @classmethod
    def _level_color(cls, level):
        for threshold, color in cls._colors:
            if level >= threshold:
                return color
        return CYAN

    def format(self, record):
        extras = record.__dict__.get("extras")
        color = self._level_color(record.levelno)

        ftime = time.strftime("%H:%M:%S", time.localtime(record.created))
        s = f"{ftime} {BOLD}[{record.name}][{color}{record.levelname}{RESET}]: {record.getMessage()}{RESET}"

        if extras:
            s += " " + " ".join(f"{LIGHTGREY}{k}{RESET}={v}" for k, v in extras.items())

        return s


__fmt = "%(name)s:%(levelname)s %(message)s"
__formatter = logging.Formatter(fmt=__fmt)
__stream_handler = logging.StreamHandler()
__stream_handler.setFormatter(__formatter)


def set_file_handler(file, formatter=None):
    """Log all packages to a file, overwritten on each call."""
    if formatter is None:
        formatter = __formatter
    fh = logging.FileHandler(file, mode="w")
    fh.setFormatter(formatter)
    for package in packages:
        logging.getLogger(package).addHandler(fh)
    return fh


def set_stream_handler(handler=None):
    """Log all packages to stderr, or to the given handler."""
    if handler is None:
        handler = __stream_handler
    for package in packages:
        logging.getLogger(package).addHandler(handler)
    return handler


def unset_stream_handler():
    for package in packages:
        logging.getLogger(package).removeHandler(__stream_handler)


def set_log_level(level, pkg: str | None = None):
    """Set the log level for the specified or all packages.

    Args:
        level: The log level to set.
        pkg: If set, apply the log level only to the specified package.
    """
    if pkg is not None:
        logging.getLogger(pkg).setLevel(level)
        return

    for package in packages:
        logging.getLogger(package).setLevel(level)


def scope_logging(func):
    """Decorator to log function entry and exit."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.debug("*** Entering %s ***", func.__qualname__)
        result = func(*args, **kwargs)
        logger.debug("*** Exiting %s ***", func.__qualname__)
        return result

    return wrapper


def _component_info(component) -> dict:
    if component is None or not hasattr(component, "ports"):
        return {}
    return {"component": component.name, "ports": ",".join(component.ports)}


def logdata(*, component=None, **kwargs):
    """Use this in log.info() and other logging functions to attach structured
    data to a record:

    log.debug("node equations", **logdata(component=cmp, n_eqs=3))
    """
    extras = dict(kwargs)
    extras.update(_component_info(component))

    if len(extras) == 0:
        return {}

    return {"extra": {"extras": extras}}


logger = logging.getLogger(__package__)


def log(level, msg, *args, **kwargs):
    logger.log(level, msg, *args, **kwargs)


def debug(msg, *args, **kwargs):
    logger.debug(msg, *args, **kwargs)


def info(msg, *args, **kwargs):
    logger.info(msg, *args, **kwargs)


def warning(msg, *args, **kwargs):
    logger.warning(msg, *args, **kwargs)


def error(msg, *args, **kwargs):
    logger.error(msg, *args, **kwargs)


def critical(msg, *args, **kwargs):
    logger.critical(msg, *args, **kwargs)
