"""Selection of the DNS configurator suited to a BSD-style system."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .debian_resolvconf import DebianResolvconfManager
from .direct import DirectManager
from .openresolv import OpenresolvManager
from .osconfig import OSConfigurator, resolv_owner
from .resolvconf import resolvconf_style
from .resolvconffile import RESOLV_CONF

Logf = Callable[[str], None]


def _default_logf(message: str) -> None:
    logging.getLogger(__name__).info(message)


def new_os_configurator(logf: Optional[Logf] = None, workaround_script: bytes = b"") -> OSConfigurator:
    """Pick a configurator based on who owns resolv.conf."""
    logf = logf or _default_logf
    try:
        with open(RESOLV_CONF, "rb") as fh:
            data = fh.read()
    except FileNotFoundError:
        return DirectManager(logf)
    except OSError as err:
        raise OSError(f"reading /etc/resolv.conf: {err}") from err

    if resolv_owner(data) != "resolvconf":
        return DirectManager(logf)

    style = resolvconf_style()
    if style == "":
        return DirectManager(logf)
    if style == "debian":
        return DebianResolvconfManager(logf, workaround_script)
    if style == "openresolv":
        return OpenresolvManager(logf)
    logf(f"[unexpected] got unknown flavor of resolvconf {style!r}, falling back to direct manager")
    return DirectManager(logf)