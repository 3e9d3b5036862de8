"""Detection of the installed resolvconf implementation."""

from __future__ import annotations

import shutil
import subprocess

_DEBIAN_EXIT_CODE = 99
_DEBIAN_BANNER = b"Debian resolvconf"


def resolvconf_style() -> str:
    """Return "debian", "openresolv", or "" when no resolvconf is installed."""
    if shutil.which("resolvconf") is None:
        return ""
    try:
        result = subprocess.run(
            ["resolvconf", "--version"],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError:
        output = b""
    else:
        # Debian resolvconf does not understand --version and exits with 99.
        if result.returncode == _DEBIAN_EXIT_CODE:
            return "debian"
        output = result.stdout or b""
    if output.startswith(_DEBIAN_BANNER):
        return "debian"
    # Everything else is treated as openresolv, by far the more common implementation.
    return "openresolv"