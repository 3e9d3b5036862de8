"""Network helpers: parallel dialing, address checks and network stack probing."""

from __future__ import annotations

import ipaddress
import queue
import random
import socket
import threading
import time
from typing import Iterable, Optional

import dns.resolver

IPV6_TEST_HOST = "ipv6.controld.io"
BOOTSTRAP_DNS_V4 = "76.76.2.22"
BOOTSTRAP_DNS_V6 = "2606:1a40::22"
PROBE_STACK_TIMEOUT = 2.0
_PROBE_MAX_BACKOFF = 5.0

_NETWORKS = {
    "tcp": (socket.SOCK_STREAM, socket.AF_UNSPEC),
    "tcp4": (socket.SOCK_STREAM, socket.AF_INET),
    "tcp6": (socket.SOCK_STREAM, socket.AF_INET6),
    "udp": (socket.SOCK_DGRAM, socket.AF_UNSPEC),
    "udp4": (socket.SOCK_DGRAM, socket.AF_INET),
    "udp6": (socket.SOCK_DGRAM, socket.AF_INET6),
}


def _parse_ip(ip: str) -> Optional[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    if "%" in ip:
        return None
    try:
        return ipaddress.ip_address(ip)
    except ValueError:
        return None


def _is_pure_ipv6(ip: str) -> Optional[ipaddress.IPv6Address]:
    addr = _parse_ip(ip)
    if not isinstance(addr, ipaddress.IPv6Address) or addr.ipv4_mapped is not None:
        return None
    return addr


def is_ipv6(ip: str) -> bool:
    """Report whether ip is an IPv6 address that is not an IPv4 one in disguise."""
    return _is_pure_ipv6(ip) is not None


def is_link_local_unicast_ipv6(ip: str) -> bool:
    """Report whether ip is a link-local unicast IPv6 address."""
    addr = _is_pure_ipv6(ip)
    return addr is not None and addr.is_link_local


def _split_host_port(addr: str) -> tuple[str, int]:
    if addr.startswith("["):
        end = addr.find("]")
        if end == -1:
            raise ValueError(f"missing ']' in address {addr!r}")
        if not addr[end + 1:].startswith(":"):
            raise ValueError(f"missing port in address {addr!r}")
        host, port = addr[1:end], addr[end + 2:]
    else:
        host, sep, port = addr.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {addr!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {addr!r}")
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"invalid port in address {addr!r}") from None


def _dial_one(network: str, addr: str, timeout: Optional[float]) -> socket.socket:
    kind, family = _NETWORKS[network]
    host, port = _split_host_port(addr)
    infos = socket.getaddrinfo(host or None, port, family, kind)
    last_err: Optional[OSError] = None
    for af, socktype, proto, _, sockaddr in infos:
        sock = socket.socket(af, socktype, proto)
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
        except OSError as err:
            sock.close()
            last_err = err
            continue
        sock.settimeout(None)
        return sock
    raise last_err or OSError(f"no addresses for {host!r}")


class ParallelDialer:
    """Dials several addresses at once and keeps the first connection that succeeds."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout

    def dial(self, network: str, addrs: Iterable[str]) -> socket.socket:
        """Return the first successful connection; raise OSError if all fail."""
        addrs = list(addrs)
        if not addrs:
            raise ValueError("empty addresses")
        if network not in _NETWORKS:
            raise ValueError(f"unknown network {network!r}")

        results: queue.Queue = queue.Queue()
        lock = threading.Lock()
        won = False

        def worker(addr: str) -> None:
            nonlocal won
            try:
                conn = _dial_one(network, addr, self.timeout)
            except Exception as err:  # noqa: BLE001 - every failure is reported
                results.put((None, f"dial {network} {addr}: {err}"))
                return
            with lock:
                if won:
                    conn.close()
                    return
                won = True
            results.put((conn, None))

        for addr in addrs:
            threading.Thread(target=worker, args=(addr,), daemon=True).start()

        errors = []
        for _ in addrs:
            conn, err = results.get()
            if conn is not None:
                return conn
            errors.append(err)
        raise OSError("\n".join(errors))


def _bootstrap_lookup(host: str, rdtype: str, lifetime: float) -> list[str]:
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = [BOOTSTRAP_DNS_V4, BOOTSTRAP_DNS_V6]
    answer = resolver.resolve(host, rdtype, lifetime=lifetime)
    return [rr.address for rr in answer]


def ipv6_available(timeout: float = PROBE_STACK_TIMEOUT) -> bool:
    """Report whether an IPv6 TCP connection to the test host works, without caching."""
    deadline = time.monotonic() + timeout
    try:
        addresses = _bootstrap_lookup(IPV6_TEST_HOST, "AAAA", timeout)
    except Exception:  # noqa: BLE001 - any lookup failure means no IPv6
        return False
    for address in addresses:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        try:
            sock = _dial_one("tcp6", f"[{address}]:443", remaining)
        except (OSError, ValueError):
            continue
        sock.close()
        return True
    return False


def _udp_reachable(host: str, port: int) -> bool:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        with socket.socket(family, socket.SOCK_DGRAM) as sock:
            sock.settimeout(PROBE_STACK_TIMEOUT)
            sock.connect((host, port))
    except OSError:
        return False
    return True


def _listen_ipv6_local() -> bool:
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as sock:
            sock.bind(("::1", 0))
            sock.listen(1)
    except OSError:
        return False
    return True


class _Backoff:
    def __init__(self, max_delay: float) -> None:
        self.max_delay = max_delay
        self.attempts = 0

    def wait(self) -> None:
        self.attempts += 1
        delay = min(0.01 * (2 ** min(self.attempts, 20)), self.max_delay)
        time.sleep(delay * random.uniform(1.0, 1.5))


class _StackProbe:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = False
        self.network_up = False
        self.can_listen_ipv6_local = False

    def ensure(self) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
            self._run()

    def _run(self) -> None:
        backoff = _Backoff(_PROBE_MAX_BACKOFF)
        while not any(_udp_reachable(h, 53) for h in (BOOTSTRAP_DNS_V4, BOOTSTRAP_DNS_V6)):
            backoff.wait()
        self.network_up = True
        self.can_listen_ipv6_local = _listen_ipv6_local()


_probe = _StackProbe()


def up() -> bool:
    """Wait until the network is reachable, probing once per process."""
    _probe.ensure()
    return _probe.network_up


def supports_ipv6_listen_local() -> bool:
    """Report whether listening on ::1 works, probing once per process."""
    _probe.ensure()
    return _probe.can_listen_ipv6_local