from __future__ import annotations

import logging

from backoffice.core import config


_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"


def configure_logging() -> None:
    """Attach a single stream handler to the ``backoffice`` logger tree."""
    root = logging.getLogger("backoffice")
    root.setLevel(config.log_level())
    if any(getattr(h, "_backoffice", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%H:%M:%S"))
    handler._backoffice = True  # type: ignore[attr-defined]
    root.addHandler(handler)
