"""DNS configuration through the openresolv implementation of resolvconf."""

from __future__ import annotations

import io
import logging
import shutil
import subprocess
from typing import Callable, Optional

from .osconfig import OSConfig, OSConfigurator, read_resolv, write_resolv_conf

Logf = Callable[[str], None]

_CONFIG_NAME = "ctrld"


def _default_logf(message: str) -> None:
    logging.getLogger(__name__).info(message)


class OpenresolvManager(OSConfigurator):
    """Manages DNS configuration with openresolv."""

    def __init__(self, logf: Optional[Logf] = None) -> None:
        self._logf: Logf = logf or _default_logf

    def _log_cmd_err(self, args: list[str], err: Exception) -> None:
        command = f"path={shutil.which(args[0]) or args[0]!r} args={args!r}"
        if isinstance(err, subprocess.CalledProcessError):
            stderr = err.stderr or b""
            self._logf(
                f"error running command {command} stderr={stderr!r} "
                f"exitCode={err.returncode}: {err}"
            )
        else:
            self._logf(f"error running command {command}: {err}")

    def _run_combined(self, args: list[str], stdin: Optional[bytes] = None) -> bytes:
        try:
            result = subprocess.run(
                args,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as err:
            self._log_cmd_err(args, err)
            raise RuntimeError(f"running {' '.join(args)}: {err}") from err
        output = result.stdout or b""
        if result.returncode != 0:
            self._log_cmd_err(args, subprocess.CalledProcessError(result.returncode, args))
            raise RuntimeError(
                f"running {' '.join(args)}: {output.decode('utf-8', errors='replace')}"
            )
        return output

    def _delete_config(self) -> None:
        self._run_combined(["resolvconf", "-f", "-d", _CONFIG_NAME])

    def set_dns(self, config: OSConfig) -> None:
        if config.is_zero():
            self._delete_config()
            return
        buf = io.BytesIO()
        write_resolv_conf(buf, config.nameservers, config.search_domains)
        self._run_combined(["resolvconf", "-m", "0", "-x", "-a", _CONFIG_NAME], buf.getvalue())

    def supports_split_dns(self) -> bool:
        return False

    def get_base_config(self) -> OSConfig:
        # Snippet names are listed most to least preferred.
        names = subprocess.run(
            ["resolvconf", "-i"],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=True,
        ).stdout or b""

        args = ["-l"]
        for name in names.decode("utf-8", errors="surrogateescape").strip().split(" "):
            if name == "tailscale":
                continue
            args.append(name)

        # A blended config of every other snippet.
        cmd = ["resolvconf", *args]
        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, check=True)
        except (OSError, subprocess.CalledProcessError) as err:
            self._log_cmd_err(cmd, err)
            raise
        return read_resolv(result.stdout or b"")

    def close(self) -> None:
        self._delete_config()

    def mode(self) -> str:
        return "resolvconf"