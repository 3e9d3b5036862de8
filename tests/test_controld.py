import json
import socket
from unittest import mock

import pytest

from resolvkit.controld import (
    INVALID_CONFIG_CODE,
    RESOLVER_DATA_URL_COM,
    RESOLVER_DATA_URL_DEV,
    UtilityError,
    UtilityOrgRequest,
    fetch_resolver_config,
    fetch_resolver_uid,
    parse_raw_uid,
    update_custom_last_failed,
)

OK_PAYLOAD = {
    "success": True,
    "body": {
        "resolver": {
            "doh": "https://dns.example.com/abcd1234",
            "ctrld": {"custom_config": "cfg", "custom_last_update": 42},
            "exclude": ["a.example.com"],
            "uid": "abcd1234",
            "deactivation_pin": 1111,
        }
    },
}


def _response(status, payload):
    return mock.Mock(status_code=status, json=mock.Mock(return_value=payload))


@pytest.mark.parametrize(
    "raw,uid,client_id",
    [
        ("", "", ""),
        ("abcd1234", "abcd1234", ""),
        ("abcd1234/clientID", "abcd1234", "clientID"),
        ("abcd1234/", "abcd1234", ""),
    ],
)
def test_parse_raw_uid(raw, uid, client_id):
    assert parse_raw_uid(raw) == (uid, client_id)


def test_fetch_resolver_config_success():
    with mock.patch("requests.post", return_value=_response(200, OK_PAYLOAD)) as post:
        cfg = fetch_resolver_config("abcd1234/clientID", "dev-test", False)
    assert cfg.doh == "https://dns.example.com/abcd1234"
    assert cfg.custom_config == "cfg"
    assert cfg.custom_last_update == 42
    assert cfg.exclude == ["a.example.com"]
    assert cfg.deactivation_pin == 1111
    args, kwargs = post.call_args
    assert args[0] == RESOLVER_DATA_URL_COM
    assert kwargs["params"] == {"platform": "ctrld", "version": "dev-test"}
    assert json.loads(kwargs["data"]) == {"uid": "abcd1234", "client_id": "clientID"}


def test_fetch_resolver_config_dev_without_client_id():
    with mock.patch("requests.post", return_value=_response(200, OK_PAYLOAD)) as post:
        cfg = fetch_resolver_config("p2", "dev-test", True)
    assert cfg.doh == "https://dns.example.com/abcd1234"
    args, kwargs = post.call_args
    assert args[0] == RESOLVER_DATA_URL_DEV
    assert json.loads(kwargs["data"]) == {"uid": "p2"}


def test_fetch_resolver_config_error_response():
    payload = {"error": {"message": "invalid uid", "code": INVALID_CONFIG_CODE}}
    with mock.patch("requests.post", return_value=_response(400, payload)):
        with pytest.raises(UtilityError) as excinfo:
            fetch_resolver_config("abcd1234", "dev-test", False)
    assert excinfo.value.code == 40402
    assert str(excinfo.value) == "invalid uid"


def test_fetch_resolver_uid_requires_request():
    with pytest.raises(ValueError, match="invalid request"):
        fetch_resolver_uid(None, "dev-test", False)


def test_fetch_resolver_uid_defaults_hostname():
    with mock.patch("requests.post", return_value=_response(200, OK_PAYLOAD)) as post:
        cfg = fetch_resolver_uid(UtilityOrgRequest(prov_token="token"), "dev-test", False)
    assert cfg.uid == "abcd1234"
    body = json.loads(post.call_args.kwargs["data"])
    assert body == {"prov_token": "token", "hostname": socket.gethostname()}


def test_update_custom_last_failed_sets_flag():
    with mock.patch("requests.post", return_value=_response(200, OK_PAYLOAD)) as post:
        cfg = update_custom_last_failed("abcd1234", "dev-test", False, False)
    assert cfg.uid == "abcd1234"
    assert cfg.custom_config == "cfg"
    assert post.call_args.kwargs["params"]["custom_last_failed"] == "1"