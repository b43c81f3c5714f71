"""Resolve a transport factory from a ``package.module:attribute`` path."""

from __future__ import annotations

import importlib
import logging

from rustlink.transport.base import TransportFactory

logger = logging.getLogger(__name__)


def load_transport_factory(path: str) -> TransportFactory:
    """Import and return the callable named by ``path``."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Transport must look like 'package.module:factory', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import transport module {module_name!r}: {e}") from e

    target = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ValueError(f"{module_name!r} has no attribute {attr!r}") from None

    if not callable(target):
        raise ValueError(f"Transport factory {path!r} is not callable")

    logger.debug("Loaded transport factory %s", path)
    return target
