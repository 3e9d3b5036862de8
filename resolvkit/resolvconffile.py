"""Parsing and rendering of resolv.conf(5) files."""

from __future__ import annotations

import io
import ipaddress
import os
import re
from dataclasses import dataclass, field
from typing import IO, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

RESOLV_CONF = "/etc/resolv.conf"
BACKUP_CONF = "/etc/resolv.pre-ctrld-backup.conf"

_MAX_NAME_LENGTH = 254  # including the trailing dot
_MAX_LABEL_LENGTH = 63
_MAX_FILE_SIZE = 10 << 10

_HEADER = (
    "# resolv.conf(5) file generated by ctrld\n"
    "# DO NOT EDIT THIS FILE BY HAND -- CHANGES WILL BE OVERWRITTEN\n\n"
)


def _is_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def _validate_label(label: str) -> None:
    if not label:
        raise ValueError("empty DNS label")
    if len(label) > _MAX_LABEL_LENGTH:
        raise ValueError(f"{label!r} is too long, max length is {_MAX_LABEL_LENGTH} bytes")
    if not _is_alnum(label[0]):
        raise ValueError(f"{label!r} is not a valid DNS label: must start with a letter or number")
    if not _is_alnum(label[-1]):
        raise ValueError(f"{label!r} is not a valid DNS label: must end with a letter or number")
    for ch in label[1:-1]:
        if not (_is_alnum(ch) or ch in "-_"):
            raise ValueError(f"{label!r} is not a valid DNS label: contains invalid character {ch!r}")


def to_fqdn(name: str) -> str:
    """Validate a DNS name and return it with a trailing dot."""
    if name in ("", "."):
        return "."
    if not name.endswith("."):
        name += "."
    if len(name) > _MAX_NAME_LENGTH:
        raise ValueError(f"{name!r} is too long to be a DNS name")
    for label in name[:-1].split("."):
        _validate_label(label)
    return name


def without_trailing_dot(fqdn: str) -> str:
    """Return the name without its trailing dot."""
    if fqdn != "." and fqdn.endswith("."):
        return fqdn[:-1]
    return fqdn


@dataclass
class ResolvConf:
    """The nameservers and search domains of a resolv.conf file."""

    nameservers: list[IPAddress] = field(default_factory=list)
    search_domains: list[str] = field(default_factory=list)

    def render(self) -> str:
        """Return the file contents as text."""
        parts = [_HEADER]
        parts.extend(f"nameserver {ns}\n" for ns in self.nameservers)
        if self.search_domains:
            domains = " ".join(without_trailing_dot(d) for d in self.search_domains)
            parts.append(f"search {domains}\n")
        return "".join(parts)

    def write(self, stream: IO) -> None:
        """Write the file contents to stream in a single write call."""
        data = self.render()
        if isinstance(stream, io.TextIOBase):
            stream.write(data)
        else:
            stream.write(data.encode())


def _strip_keyword(line: str, keyword: str) -> str | None:
    if line.startswith(keyword):
        return line[len(keyword):]
    return None


def parse(text: str | bytes) -> ResolvConf:
    """Parse resolv.conf contents, raising ValueError on malformed lines."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="surrogateescape")
    config = ResolvConf()
    for raw in text.split("\n"):
        line = raw.rstrip("\r").split("#", 1)[0].strip()

        rest = _strip_keyword(line, "nameserver")
        if rest is not None:
            nameserver = rest.strip()
            if len(nameserver) == len(rest):
                raise ValueError(f'missing space after "nameserver" in {line!r}')
            config.nameservers.append(ipaddress.ip_address(nameserver))
            continue

        rest = _strip_keyword(line, "search")
        if rest is not None:
            domains = rest.strip()
            if len(domains) == len(rest):
                raise ValueError(f'missing space after "search" in {line!r}')
            for domain in re.split(r"[ \t]+", domains):
                if not domain:
                    continue
                try:
                    fqdn = to_fqdn(domain)
                except ValueError as err:
                    raise ValueError(
                        f"parsing search domain {domain!r} in {line!r}: {err}"
                    ) from err
                config.search_domains.append(fqdn)
    return config


def parse_file(path: str | os.PathLike) -> ResolvConf:
    """Parse the named resolv.conf file."""
    size = os.stat(path).st_size
    if size > _MAX_FILE_SIZE:
        raise ValueError(f"unexpectedly large {str(path)!r} file: {size} bytes")
    with open(path, "rb") as fh:
        return parse(fh.read())


def name_servers(path: str | os.PathLike = RESOLV_CONF) -> list[str]:
    """Return the nameserver addresses listed in path, or [] if unreadable."""
    try:
        config = parse_file(path)
    except (OSError, ValueError):
        return []
    return [str(ns) for ns in config.nameservers]


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def name_servers_with_port(path: str | os.PathLike = RESOLV_CONF) -> list[str]:
    """Return the nameservers in path as host:53 addresses, or [] if unreadable."""
    return [_join_host_port(ns, "53") for ns in name_servers(path)]