"""Operating-system DNS configuration values and the configurator interface."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import IO, Iterable

from .resolvconffile import IPAddress, ResolvConf, parse


@dataclass
class HostEntry:
    """A single line of the OS hosts file."""

    addr: IPAddress
    hosts: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"&{{Addr:{self.addr} Hosts:[{' '.join(self.hosts)}]}}"


def _join(items: Iterable) -> str:
    return " ".join(str(i) for i in items)


@dataclass
class OSConfig:
    """An OS DNS configuration."""

    hosts: list[HostEntry] = field(default_factory=list)
    nameservers: list[IPAddress] = field(default_factory=list)
    search_domains: list[str] = field(default_factory=list)
    match_domains: list[str] = field(default_factory=list)

    def is_zero(self) -> bool:
        """Report whether the configuration holds nothing at all."""
        return not (self.hosts or self.nameservers or self.search_domains or self.match_domains)

    def summary(self) -> str:
        """Compact description that omits empty fields and counts .arpa match domains."""
        parts = ["{"]
        if self.hosts:
            parts.append(f"Hosts:[{_join(self.hosts)}] ")
        if self.nameservers:
            parts.append(f"Nameservers:[{_join(self.nameservers)}] ")
        if self.search_domains:
            parts.append(f"SearchDomains:[{_join(self.search_domains)}] ")
        if self.match_domains:
            shown = [d for d in self.match_domains if not d.endswith(".arpa.")]
            num_arpa = len(self.match_domains) - len(shown)
            parts.append(f"MatchDomains:[{_join(shown)}]")
            if num_arpa:
                parts.append(f"+{num_arpa}arpa")
        parts.append("}")
        return "".join(parts)

    def __str__(self) -> str:
        return (
            f"{{Nameservers:[{_join(self.nameservers)}]"
            f" SearchDomains:[{_join(self.search_domains)}]"
            f" MatchDomains:[{_join(self.match_domains)}]"
            f" Hosts:[{_join(self.hosts)}]}}"
        )


class GetBaseConfigNotSupportedError(Exception):
    """Raised by configurators that cannot read the OS base configuration."""

    def __init__(self, message: str = "getting OS base config is not supported") -> None:
        super().__init__(message)


class OSConfigurator(abc.ABC):
    """Applies DNS settings to the operating system."""

    @abc.abstractmethod
    def set_dns(self, config: OSConfig) -> None:
        """Apply config; an empty config removes all managed settings."""

    @abc.abstractmethod
    def supports_split_dns(self) -> bool:
        """Report whether resolvers can be installed for specific suffixes only."""

    @abc.abstractmethod
    def get_base_config(self) -> OSConfig:
        """Return the configuration the OS would use without our settings."""

    @abc.abstractmethod
    def close(self) -> None:
        """Remove all managed DNS settings from the OS."""

    @abc.abstractmethod
    def mode(self) -> str:
        """Name of the configuration mechanism."""


def read_resolv(text: str | bytes) -> OSConfig:
    """Parse resolv.conf contents into an OSConfig."""
    conf = parse(text)
    return OSConfig(nameservers=conf.nameservers, search_domains=conf.search_domains)


def write_resolv_conf(stream: IO, nameservers: Iterable[IPAddress], search_domains: Iterable[str]) -> None:
    """Write a resolv.conf file for the given servers and domains to stream."""
    ResolvConf(nameservers=list(nameservers), search_domains=list(search_domains)).write(stream)


def resolv_owner(data: str | bytes) -> str:
    """Guess which program owns a resolv.conf from its header comments.

    Returns "systemd-resolved", "NetworkManager", "resolvconf" or "".
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    likely = ""
    # Only newline-terminated lines are considered.
    for raw in data.split("\n")[:-1]:
        line = raw.strip()
        if not line:
            continue
        if not line.startswith("#"):
            return likely
        if "systemd-resolved" in line:
            likely = "systemd-resolved"
        elif "NetworkManager" in line:
            likely = "NetworkManager"
        elif "resolvconf" in line:
            likely = "resolvconf"
    return likely