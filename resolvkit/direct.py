"""DNS configuration by rewriting /etc/resolv.conf directly."""

from __future__ import annotations

import abc
import io
import ipaddress
import logging
import os
import secrets
import shutil
import stat
import subprocess
import sys
import threading
import time
from typing import Callable, Optional

from .osconfig import OSConfig, OSConfigurator, read_resolv, write_resolv_conf
from .resolvconffile import BACKUP_CONF, RESOLV_CONF

Logf = Callable[[str], None]

_OWNER_MARKER = b"generated by ctrld"
_LEGACY_LINK = "/etc/resolv.ctrld.conf"
_SERVICE_IPS = frozenset(
    {
        ipaddress.ip_address("100.100.100.100"),
        ipaddress.ip_address("fd7a:115c:a1e0::53"),
    }
)
_TRAMPLE_SHOW_LIMIT = 1024


def _is_synology() -> bool:
    return sys.platform.startswith("linux") and os.path.exists("/etc.defaults/VERSION")


def is_resolved_running() -> bool:
    """Report whether systemd-resolved is active, even if it does not manage DNS."""
    if not sys.platform.startswith("linux"):
        return False
    if shutil.which("systemctl") is None:
        return False
    try:
        result = subprocess.run(
            ["systemctl", "is-active", "systemd-resolved.service"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=2,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def restart_resolved() -> None:
    """Restart systemd-resolved, raising on failure."""
    subprocess.run(
        ["systemctl", "restart", "systemd-resolved.service"],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        timeout=5,
        check=True,
    )


def running_as_gui_desktop_user() -> bool:
    """Report whether this seems to run as a regular user on a Linux desktop."""
    if not hasattr(os, "getuid"):
        return False
    return os.getuid() != 0 and bool(os.environ.get("DISPLAY"))


class WholeFileFS(abc.ABC):
    """Whole-file operations on absolute paths, as needed by DirectManager."""

    @abc.abstractmethod
    def stat(self, name: str) -> bool:
        """Return whether name is a regular file; raise FileNotFoundError if absent."""

    @abc.abstractmethod
    def chmod(self, name: str, mode: int) -> None:
        """Set the permission bits of name."""

    @abc.abstractmethod
    def rename(self, old_name: str, new_name: str) -> None:
        """Move old_name to new_name."""

    @abc.abstractmethod
    def remove(self, name: str) -> None:
        """Delete name."""

    @abc.abstractmethod
    def read_file(self, name: str) -> bytes:
        """Return the contents of name."""

    @abc.abstractmethod
    def truncate(self, name: str) -> None:
        """Truncate name to zero length."""

    @abc.abstractmethod
    def write_file(self, name: str, contents: bytes, perm: int) -> None:
        """Write contents to name, creating it with perm if needed."""


class DirectFS(WholeFileFS):
    """WholeFileFS on the real file system, optionally below a path prefix."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def path(self, name: str) -> str:
        """Map an absolute name onto the real file system."""
        if not self.prefix:
            return name
        return os.path.join(self.prefix, name.lstrip("/"))

    def stat(self, name: str) -> bool:
        return stat.S_ISREG(os.stat(self.path(name)).st_mode)

    def chmod(self, name: str, mode: int) -> None:
        os.chmod(self.path(name), mode)

    def rename(self, old_name: str, new_name: str) -> None:
        os.rename(self.path(old_name), self.path(new_name))

    def remove(self, name: str) -> None:
        os.remove(self.path(name))

    def read_file(self, name: str) -> bytes:
        with open(self.path(name), "rb") as fh:
            return fh.read()

    def truncate(self, name: str) -> None:
        os.truncate(self.path(name), 0)

    def write_file(self, name: str, contents: bytes, perm: int) -> None:
        fd = os.open(self.path(name), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, perm)
        with os.fdopen(fd, "wb") as fh:
            fh.write(contents)


def _default_logf(message: str) -> None:
    logging.getLogger(__name__).info(message)


class DirectManager(OSConfigurator):
    """Replaces /etc/resolv.conf with a generated file, keeping a backup of the old one.

    close() must be called before shutdown to restore the original file.
    """

    def __init__(
        self,
        logf: Optional[Logf] = None,
        fs: Optional[WholeFileFS] = None,
        watch: bool = True,
    ) -> None:
        self._logf: Logf = logf or _default_logf
        self._fs: WholeFileFS = fs if fs is not None else DirectFS()
        # Set once rename to or from resolv.conf fails, e.g. when it is bind-mounted.
        self._rename_broken = False
        self._lock = threading.Lock()
        self._want: Optional[bytes] = None
        self._last_warn: Optional[bytes] = None
        self.trampled = False
        self._observer = None
        if watch and sys.platform.startswith("linux"):
            self._start_watcher()

    # -- file watching -------------------------------------------------

    def _start_watcher(self) -> None:
        try:
            from watchdog.events import FileSystemEventHandler
            from watchdog.observers import Observer
        except ImportError as err:
            self._logf(f"dns: file watcher unavailable: {err}")
            return

        if isinstance(self._fs, DirectFS):
            target = self._fs.path(RESOLV_CONF)
        else:
            target = RESOLV_CONF
        target = os.path.normpath(target)
        watch_dir = os.path.dirname(target)
        manager = self

        class _Handler(FileSystemEventHandler):
            def on_any_event(self, event) -> None:
                paths = {getattr(event, "src_path", ""), getattr(event, "dest_path", "")}
                if any(p and os.path.normpath(os.fsdecode(p)) == target for p in paths):
                    manager.check_for_file_trample()

        observer = Observer()
        try:
            observer.schedule(_Handler(), watch_dir, recursive=False)
            observer.daemon = True
            observer.start()
        except (OSError, RuntimeError) as err:
            self._logf(f"dns: file watcher: {err}")
            return
        self._observer = observer

    def _stop_watcher(self) -> None:
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=2)

    def check_for_file_trample(self) -> None:
        """Check whether another program overwrote the resolv.conf we wrote."""
        with self._lock:
            want = self._want
            last_warn = self._last_warn
        if want is None:
            return
        try:
            cur = self._fs.read_file(RESOLV_CONF)
        except OSError as err:
            self._logf(f"trample: read error: {err}")
            return
        if cur == want:
            self.trampled = False
            if last_warn is not None:
                with self._lock:
                    self._last_warn = None
                self._logf("trample: resolv.conf again matches expected content")
            return
        if cur == last_warn:
            return
        with self._lock:
            self._last_warn = cur
        show = cur[:_TRAMPLE_SHOW_LIMIT]
        self._logf(
            "trample: resolv.conf changed from what we expected. "
            f"did some other program interfere? current contents: {show!r}"
        )
        self.trampled = True

    # -- helpers -------------------------------------------------------

    def _set_want(self, want: Optional[bytes]) -> None:
        with self._lock:
            self._want = want

    def _exists(self, name: str) -> bool:
        try:
            self._fs.stat(name)
        except FileNotFoundError:
            return False
        return True

    def _owned(self) -> bool:
        try:
            is_regular = self._fs.stat(RESOLV_CONF)
        except FileNotFoundError:
            return False
        if not is_regular:
            return False
        return _OWNER_MARKER in self._fs.read_file(RESOLV_CONF)

    def _remove_quietly(self, name: str) -> None:
        try:
            self._fs.remove(name)
        except OSError:
            pass

    def _backup_config(self) -> None:
        if not self._exists(RESOLV_CONF):
            # Nothing to back up; drop any stale backup so it is never restored.
            self._remove_quietly(BACKUP_CONF)
            return
        if self._owned():
            return
        self._rename(RESOLV_CONF, BACKUP_CONF)

    def _restore_backup(self) -> bool:
        if not self._exists(BACKUP_CONF):
            return False
        owned = self._owned()
        if self._exists(RESOLV_CONF) and not owned:
            # Someone else's configuration is in place; our backup is stale.
            self._remove_quietly(BACKUP_CONF)
            return False
        self._rename(BACKUP_CONF, RESOLV_CONF)
        return True

    def _rename(self, old: str, new: str) -> None:
        """Rename, falling back to copy and delete (or truncate) when rename fails."""
        if not self._rename_broken:
            try:
                self._fs.rename(old, new)
                return
            except OSError as err:
                if _is_synology():
                    raise
                self._logf(
                    f"rename of {old!r} to {new!r} failed ({err}), falling back to copy+delete"
                )
                self._rename_broken = True

        try:
            data = self._fs.read_file(old)
        except OSError as err:
            raise OSError(f"reading {old!r} to rename: {err}") from err
        try:
            self._fs.write_file(new, data, 0o644)
        except OSError as err:
            raise OSError(f"writing to {new!r} in rename of {old!r}: {err}") from err
        try:
            self._fs.chmod(new, 0o644)
        except OSError as err:
            raise OSError(f"chmod {new!r} in rename of {old!r}: {err}") from err
        try:
            self._fs.remove(old)
        except OSError as err:
            try:
                self._fs.truncate(old)
            except OSError as err2:
                raise OSError(
                    f"remove of {old!r} failed ({err}) and so did truncate: {err2}"
                ) from err

    def _atomic_write_file(self, filename: str, data: bytes, perm: int) -> None:
        tmp_name = f"{filename}.{secrets.token_hex(12)}.tmp"
        try:
            try:
                self._fs.write_file(tmp_name, data, perm)
            except OSError as err:
                raise OSError(f"atomicWriteFile: {err}") from err
            try:
                self._fs.chmod(tmp_name, perm)
            except OSError as err:
                raise OSError(f"atomicWriteFile: Chmod: {err}") from err
            self._rename(tmp_name, filename)
        finally:
            self._remove_quietly(tmp_name)

    def _maybe_restart_resolved(self) -> None:
        if not is_resolved_running() or running_as_gui_desktop_user():
            return
        start = time.monotonic()
        try:
            restart_resolved()
        except (OSError, subprocess.SubprocessError) as err:
            elapsed = round((time.monotonic() - start) * 1000)
            self._logf(f"error restarting resolved after {elapsed}ms: {err}")
        else:
            elapsed = round((time.monotonic() - start) * 1000)
            self._logf(f"restarted resolved after {elapsed}ms")

    # -- OSConfigurator ------------------------------------------------

    def set_dns(self, config: OSConfig) -> None:
        try:
            self._set_dns(config)
        except PermissionError as err:
            if _is_synology() and os.geteuid() != 0:
                self._logf(f"ignoring SetDNS permission error on Synology; was: {err}")
                return
            raise

    def _set_dns(self, config: OSConfig) -> None:
        self._set_want(None)
        if config.is_zero():
            changed = self._restore_backup()
        else:
            changed = True
            self._backup_config()
            buf = io.BytesIO()
            write_resolv_conf(buf, config.nameservers, config.search_domains)
            data = buf.getvalue()
            self._atomic_write_file(RESOLV_CONF, data, 0o644)
            # From now on, different contents mean someone else trampled on it.
            self._set_want(data)
        if changed:
            self._maybe_restart_resolved()

    def supports_split_dns(self) -> bool:
        return False

    def get_base_config(self) -> OSConfig:
        path = BACKUP_CONF if self._owned() else RESOLV_CONF
        config = read_resolv(self._fs.read_file(path))
        kept = [ns for ns in config.nameservers if ns not in _SERVICE_IPS]
        if len(kept) != len(config.nameservers):
            self._logf("[v1] dropped Tailscale IP from base config that was a symlink")
        config.nameservers = kept
        return config

    def close(self) -> None:
        self._stop_watcher()
        self._remove_quietly(_LEGACY_LINK)
        if not self._exists(BACKUP_CONF):
            return
        owned = self._owned()
        if self._exists(RESOLV_CONF) and not owned:
            self._remove_quietly(BACKUP_CONF)
            return
        self._rename(BACKUP_CONF, RESOLV_CONF)
        if is_resolved_running() and not running_as_gui_desktop_user():
            self._logf("restarting systemd-resolved...")
            try:
                restart_resolved()
            except (OSError, subprocess.SubprocessError) as err:
                self._logf(f"restart of systemd-resolved failed: {err}")
            else:
                self._logf("restarted systemd-resolved")

    def mode(self) -> str:
        return "direct"