"""Detection of the DNS configuration mechanism in use on a Linux system."""

from __future__ import annotations

import ipaddress
import json
import re
from dataclasses import dataclass
from typing import Callable, Optional

from .direct import WholeFileFS
from .osconfig import read_resolv, resolv_owner
from .resolvconffile import RESOLV_CONF

Logf = Callable[[str], None]
Dbg = Callable[[str, str], None]

_NSSWITCH_CONF = "/etc/nsswitch.conf"
_RESOLVED_STUB = ipaddress.ip_address("127.0.0.53")

_RESOLVED_NAME = "org.freedesktop.resolve1"
_RESOLVED_PATH = "/org/freedesktop/resolve1"
_RESOLVED_IFACE = "org.freedesktop.resolve1.Manager"
_NM_NAME = "org.freedesktop.NetworkManager"
_NM_DNS_PATH = "/org/freedesktop/NetworkManager/DnsManager"

# Only these NetworkManager versions program resolved in a way we can rely on.
_NM_SAFE_FIRST = "1.26.0"
_NM_SAFE_LAST = "1.26.5"

_NM_RESOLVED_MISWIRED = (
    "systemd-resolved and NetworkManager are wired together incorrectly; "
    "MagicDNS will probably not work."
)

_RUN_RE = re.compile(r"(\D*)(\d*)")


@dataclass
class OSConfigEnv:
    """The probes dns_mode relies on, injectable for testing.

    Probes signal failure by raising an exception.
    """

    fs: WholeFileFS
    dbus_ping: Callable[[str, str], None]
    dbus_read_string: Callable[[str, str, str, str], str]
    nm_is_using_resolved: Callable[[], None]
    nm_version_between: Callable[[str, str], bool]
    resolvconf_style: Callable[[], str]
    dns_manager_health: Optional[Callable[[str], None]] = None


def _succeeds(probe: Callable[[], object]) -> bool:
    try:
        probe()
    except Exception:
        return False
    return True


def compare_versions(v1: str, v2: str) -> int:
    """Compare two version strings, returning -1, 0 or 1.

    Non-numeric runs compare lexicographically and numeric runs numerically;
    a missing numeric run counts as zero.
    """
    while v1 or v2:
        m1 = _RUN_RE.match(v1)
        m2 = _RUN_RE.match(v2)
        text1, num1 = m1.group(1), m1.group(2)
        text2, num2 = m2.group(1), m2.group(2)
        if text1 != text2:
            return -1 if text1 < text2 else 1
        n1 = int(num1) if num1 else 0
        n2 = int(num2) if num2 else 0
        if n1 != n2:
            return -1 if n1 < n2 else 1
        v1 = v1[m1.end():]
        v2 = v2[m2.end():]
    return 0


def version_between(version: str, first: str, last: str) -> bool:
    """Report whether version lies within [first, last] inclusive."""
    return compare_versions(version, first) >= 0 and compare_versions(version, last) <= 0


def is_libnss_resolve_used(env: OSConfigEnv) -> None:
    """Return if libnss_resolve resolves host names; raise ValueError otherwise."""
    try:
        data = env.fs.read_file(_NSSWITCH_CONF)
    except OSError as err:
        raise ValueError(f"reading {_NSSWITCH_CONF}: {err}") from err
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    for line in text.split("\n"):
        fields = line.split()
        if len(fields) < 2 or fields[0] != "hosts:":
            continue
        for module in fields[1:]:
            if module == "dns":
                raise ValueError("dns with a higher priority than libnss_resolve")
            if module == "resolve":
                return
    raise ValueError("libnss_resolve not used")


def resolved_is_actually_resolver(logf: Logf, env: OSConfigEnv, dbg: Dbg, data: bytes | str) -> None:
    """Return if systemd-resolved is the system resolver; raise ValueError otherwise.

    resolved counts as in use when nsswitch routes through libnss_resolve, or
    when every nameserver in resolv.conf is the resolved stub address.
    """
    try:
        is_libnss_resolve_used(env)
    except ValueError:
        pass
    else:
        dbg("resolved", "nss")
        return

    cfg = read_resolv(data)
    if not cfg.nameservers:
        raise ValueError("resolv.conf has no nameservers")
    # Repeated mentions of the stub address are allowed.
    if any(ns != _RESOLVED_STUB for ns in cfg.nameservers):
        shown = " ".join(str(ns) for ns in cfg.nameservers)
        raise ValueError(f"resolv.conf doesn't point to systemd-resolved; points to [{shown}]")
    dbg("resolved", "file")


def _nm_safe(env: OSConfigEnv) -> bool:
    try:
        return env.nm_version_between(_NM_SAFE_FIRST, _NM_SAFE_LAST)
    except Exception as err:
        raise RuntimeError(f"checking NetworkManager version: {err}") from err


def _detect(logf: Logf, env: OSConfigEnv, dbg: Dbg) -> str:
    # Pinging resolved first lets it start and write resolv.conf before we read it.
    if _succeeds(lambda: env.dbus_ping(_RESOLVED_NAME, _RESOLVED_PATH)):
        dbg("resolved-ping", "yes")

    try:
        data = env.fs.read_file(RESOLV_CONF)
    except FileNotFoundError:
        dbg("rc", "missing")
        return "direct"
    except OSError as err:
        raise OSError(f"reading /etc/resolv.conf: {err}") from err

    owner = resolv_owner(data)
    nm_up = lambda: _succeeds(lambda: env.dbus_ping(_NM_NAME, _NM_DNS_PATH))  # noqa: E731
    nm_resolved = lambda: _succeeds(env.nm_is_using_resolved)  # noqa: E731

    if owner == "systemd-resolved":
        dbg("rc", "resolved")
        # Some files claim resolved in the header but point elsewhere.
        try:
            resolved_is_actually_resolver(logf, env, dbg, data)
        except ValueError as err:
            logf(f"dns: resolvedIsActuallyResolver error: {err}")
            dbg("resolved", "not-in-use")
            return "direct"
        if not nm_up():
            dbg("nm", "no")
            return "systemd-resolved"
        dbg("nm", "yes")
        if not nm_resolved():
            dbg("nm-resolved", "no")
            return "systemd-resolved"
        dbg("nm-resolved", "yes")
        # Older NM overrides other resolved clients; newer NM ignores DNS
        # on unmanaged interfaces. Only a narrow range must go through NM.
        if _nm_safe(env):
            dbg("nm-safe", "yes")
            return "network-manager"
        dbg("nm-safe", "no")
        return "systemd-resolved"

    if owner == "resolvconf":
        dbg("rc", "resolvconf")
        style = env.resolvconf_style()
        if style == "":
            dbg("resolvconf", "no")
            return "direct"
        if style == "debian":
            dbg("resolvconf", "debian")
            return "debian-resolvconf"
        if style == "openresolv":
            dbg("resolvconf", "openresolv")
            return "openresolv"
        dbg("resolvconf", style)
        logf(
            f"[unexpected] got unknown flavor of resolvconf {json.dumps(env.resolvconf_style())}, "
            "falling back to direct manager"
        )
        return "direct"

    if owner == "NetworkManager":
        dbg("rc", "nm")
        # NetworkManager sometimes points resolv.conf at resolved.
        try:
            resolved_is_actually_resolver(logf, env, dbg, data)
        except ValueError as err:
            logf(f"dns: resolvedIsActuallyResolver error: {err}")
            dbg("resolved", "not-in-use")
            # Configuring through NM would lose IPv6 settings on our interface.
            return "direct"
        dbg("nm-resolved", "yes")
        if not nm_up():
            dbg("nm", "no")
            return "systemd-resolved"
        if _nm_safe(env):
            dbg("nm-safe", "yes")
            return "network-manager"
        if not nm_resolved():
            # resolved is not running at all; take direct control.
            dbg("nm-resolved", "no")
            return "direct"
        if env.dns_manager_health is not None:
            env.dns_manager_health(_NM_RESOLVED_MISWIRED)
        dbg("nm-safe", "no")
        return "systemd-resolved"

    dbg("rc", "unknown")
    return "direct"


def dns_mode(logf: Logf, env: OSConfigEnv) -> str:
    """Return the DNS mode to use.

    One of "direct", "systemd-resolved", "network-manager",
    "debian-resolvconf" or "openresolv". A summary of the decision is logged.
    """
    debug: list[tuple[str, str]] = []

    def dbg(key: str, value: str) -> None:
        debug.append((key, value))

    ret = ""
    try:
        ret = _detect(logf, env, dbg)
        if ret == "systemd-resolved":
            try:
                mode = env.dbus_read_string(
                    _RESOLVED_NAME, _RESOLVED_PATH, _RESOLVED_IFACE, "ResolvConfMode"
                )
            except Exception as err:
                logf(f"dns: ResolvConfMode error: {err}")
                dbg("resolv-conf-mode", "error")
            else:
                dbg("resolv-conf-mode", mode)
        return ret
    finally:
        if ret:
            dbg("ret", ret)
        logf("dns: [" + " ".join(f"{k}={v}" for k, v in debug) + "]")