"""DNS configuration through the Debian implementation of resolvconf."""

from __future__ import annotations

import io
import logging
import os
import subprocess
import tempfile
from typing import Callable, Optional

from .osconfig import OSConfig, OSConfigurator, read_resolv, write_resolv_conf

Logf = Callable[[str], None]

# The "tun" prefix matches Debian resolvconf's hardcoded interface order, placing
# this configuration ahead of regular network links.
_CONFIG_NAME = "tun-ctrld.inet"
_LIBC_HOOK_DIR = "/etc/resolvconf/update-libc.d"
_LIST_RECORDS = "/lib/resolvconf/list-records"
_INTERFACE_DIRS = (
    "/etc/resolvconf/run/interface",
    "/run/resolvconf/interface",
    "/var/run/resolvconf/interface",
)


def _default_logf(message: str) -> None:
    logging.getLogger(__name__).info(message)


def _run_combined(args: list[str], stdin: Optional[bytes] = None) -> None:
    try:
        result = subprocess.run(
            args,
            input=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as err:
        raise RuntimeError(f"running {' '.join(args)}: {err}") from err
    if result.returncode != 0:
        output = (result.stdout or b"").decode("utf-8", errors="replace")
        raise RuntimeError(f"running {' '.join(args)}: {output}")


def _atomic_write(path: str, data: bytes, mode: int) -> None:
    directory = os.path.dirname(path) or "."
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=os.path.basename(path) + ".")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.remove(tmp)
        except OSError:
            pass
        raise


class DebianResolvconfManager(OSConfigurator):
    """Manages DNS with Debian resolvconf, plus a libc hook that enforces our config."""

    def __init__(self, logf: Optional[Logf] = None, workaround_script: bytes = b"") -> None:
        self._logf: Logf = logf or _default_logf
        self.workaround_script = workaround_script
        self.hook_dir = _LIBC_HOOK_DIR
        self.hook_path = os.path.join(_LIBC_HOOK_DIR, "ctrld")
        self.script_installed = False

        self.list_records_path = _LIST_RECORDS
        if not os.path.exists(self.list_records_path):
            # Debian systems from before the /usr merge.
            self.list_records_path = "/usr" + self.list_records_path

        self.interfaces_dir = _INTERFACE_DIRS[0]
        for path in _INTERFACE_DIRS:
            if os.path.exists(path):
                self.interfaces_dir = path
                break

    def _delete_config(self) -> None:
        _run_combined(["resolvconf", "-d", _CONFIG_NAME])

    def set_dns(self, config: OSConfig) -> None:
        if not self.script_installed:
            self._logf("injecting resolvconf workaround script")
            os.makedirs(self.hook_dir, mode=0o755, exist_ok=True)
            _atomic_write(self.hook_path, self.workaround_script, 0o755)
            self.script_installed = True

        if config.is_zero():
            self._delete_config()
            return

        buf = io.BytesIO()
        write_resolv_conf(buf, config.nameservers, config.search_domains)
        # This implementation blends our config with others; the hook fixes that up.
        _run_combined(["resolvconf", "-a", _CONFIG_NAME], buf.getvalue())

    def supports_split_dns(self) -> bool:
        return False

    def get_base_config(self) -> OSConfig:
        # list-records must run from the interfaces runtime directory.
        result = subprocess.run(
            [self.list_records_path],
            cwd=self.interfaces_dir,
            stdout=subprocess.PIPE,
            check=True,
        )
        conf = bytearray()
        for raw in (result.stdout or b"").split(b"\n"):
            name = raw.rstrip(b"\r").decode("utf-8", errors="surrogateescape")
            if not name or name == _CONFIG_NAME:
                continue
            try:
                with open(os.path.join(self.interfaces_dir, name), "rb") as fh:
                    conf += fh.read()
            except FileNotFoundError:
                # Raced with a deletion.
                continue
            conf += b"\n"
        return read_resolv(bytes(conf))

    def close(self) -> None:
        self._delete_config()
        if self.script_installed:
            self._logf("removing resolvconf workaround script")
            try:
                os.remove(self.hook_path)
            except OSError:
                pass

    def mode(self) -> str:
        return "resolvconf"