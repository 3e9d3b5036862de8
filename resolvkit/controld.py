"""Client for the Control D utility API that serves resolver configuration."""

from __future__ import annotations

import json
import socket
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

API_DOMAIN_COM = "api.controld.com"
API_DOMAIN_DEV = "api.controld.dev"
RESOLVER_DATA_URL_COM = "https://api.controld.com/utility"
RESOLVER_DATA_URL_DEV = "https://api.controld.dev/utility"
INVALID_CONFIG_CODE = 40402
_TIMEOUT = 10.0


@dataclass
class ResolverConfig:
    """Resolver data returned by the API."""

    doh: str = ""
    custom_config: str = ""
    custom_last_update: int = 0
    exclude: list[str] = field(default_factory=list)
    uid: str = ""
    deactivation_pin: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResolverConfig":
        """Build a config from the decoded "resolver" object."""
        ctrld = data.get("ctrld") or {}
        return cls(
            doh=data.get("doh") or "",
            custom_config=ctrld.get("custom_config") or "",
            custom_last_update=int(ctrld.get("custom_last_update") or 0),
            exclude=list(data.get("exclude") or []),
            uid=data.get("uid") or "",
            deactivation_pin=data.get("deactivation_pin"),
        )


@dataclass
class UtilityOrgRequest:
    """Request data for exchanging a provisioning token for a resolver."""

    prov_token: str
    hostname: str = ""


class UtilityError(Exception):
    """An error reported by the utility API."""

    def __init__(self, message: str, code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def parse_raw_uid(raw_uid: str) -> tuple[str, str]:
    """Split "<uid>" or "<uid>/<client_id>" into (uid, client_id)."""
    uid, _, client_id = raw_uid.partition("/")
    return uid, client_id


def _uid_body(raw_uid: str) -> dict[str, str]:
    uid, client_id = parse_raw_uid(raw_uid)
    body = {"uid": uid}
    if client_id:
        body["client_id"] = client_id
    return body


def _post_utility_api(version: str, cd_dev: bool, last_updated_failed: bool, body: dict) -> ResolverConfig:
    url = RESOLVER_DATA_URL_DEV if cd_dev else RESOLVER_DATA_URL_COM
    params = {"platform": "ctrld", "version": version}
    if last_updated_failed:
        params["custom_last_failed"] = "1"
    resp = requests.post(
        url,
        params=params,
        data=json.dumps(body),
        headers={"Content-Type": "application/json"},
        timeout=_TIMEOUT,
    )
    if resp.status_code != 200:
        error = (resp.json() or {}).get("error") or {}
        raise UtilityError(error.get("message", ""), int(error.get("code", 0)))
    payload = resp.json() or {}
    resolver = (payload.get("body") or {}).get("resolver") or {}
    return ResolverConfig.from_dict(resolver)


def fetch_resolver_config(raw_uid: str, version: str, cd_dev: bool = False) -> ResolverConfig:
    """Fetch the resolver configuration for a raw UID."""
    return _post_utility_api(version, cd_dev, False, _uid_body(raw_uid))


def fetch_resolver_uid(req: Optional[UtilityOrgRequest], version: str, cd_dev: bool = False) -> ResolverConfig:
    """Fetch the resolver for a provisioning token, defaulting to this host's name."""
    if req is None:
        raise ValueError("invalid request")
    hostname = req.hostname or socket.gethostname()
    body = {"prov_token": req.prov_token, "hostname": hostname}
    return _post_utility_api(version, cd_dev, False, body)


def update_custom_last_failed(
    raw_uid: str, version: str, cd_dev: bool = False, last_updated_failed: bool = True
) -> ResolverConfig:
    """Tell the API that the custom config is bad.

    The failure flag is always sent, whatever last_updated_failed says.
    """
    return _post_utility_api(version, cd_dev, True, _uid_body(raw_uid))