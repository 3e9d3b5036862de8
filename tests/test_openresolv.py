import ipaddress
import subprocess
from unittest import mock

import pytest

from resolvkit.openresolv import OpenresolvManager
from resolvkit.osconfig import OSConfig


class Recorder:
    def __init__(self, responses=None, returncode=0):
        self.calls = []
        self.responses = responses or {}
        self.returncode = returncode

    def __call__(self, args, **kwargs):
        args = list(args)
        self.calls.append((args, kwargs))
        stdout = self.responses.get(tuple(args[:2]), b"")
        if self.returncode and kwargs.get("check"):
            raise subprocess.CalledProcessError(self.returncode, args)
        return subprocess.CompletedProcess(args, self.returncode, stdout=stdout)


def test_set_dns_adds_exclusive_config():
    rec = Recorder()
    m = OpenresolvManager(lambda s: None)
    with mock.patch("subprocess.run", rec):
        result = m.set_dns(OSConfig(nameservers=[ipaddress.ip_address("8.8.8.8")]))
    assert result is None
    assert len(rec.calls) == 1
    args, kwargs = rec.calls[0]
    assert args == ["resolvconf", "-m", "0", "-x", "-a", "ctrld"]
    assert b"nameserver 8.8.8.8\n" in kwargs["input"]


def test_zero_config_deletes():
    rec = Recorder()
    m = OpenresolvManager(lambda s: None)
    with mock.patch("subprocess.run", rec):
        result = m.set_dns(OSConfig())
    assert result is None
    assert len(rec.calls) == 1
    assert rec.calls[0][0] == ["resolvconf", "-f", "-d", "ctrld"]


def test_close_deletes():
    rec = Recorder()
    m = OpenresolvManager(lambda s: None)
    with mock.patch("subprocess.run", rec):
        result = m.close()
    assert result is None
    assert len(rec.calls) == 1
    assert rec.calls[0][0] == ["resolvconf", "-f", "-d", "ctrld"]


def test_failure_raises_and_logs():
    logs = []
    rec = Recorder(responses={("resolvconf", "-f"): b"denied"}, returncode=1)
    m = OpenresolvManager(logs.append)
    with mock.patch("subprocess.run", rec):
        with pytest.raises(RuntimeError, match="denied"):
            m.close()
    assert len(logs) == 1
    assert logs[0].startswith("error running command")


def test_get_base_config_lists_other_snippets():
    rec = Recorder(
        responses={
            ("resolvconf", "-i"): b"eth0 tailscale wlan0\n",
            ("resolvconf", "-l"): b"nameserver 9.9.9.9\nsearch example.com\n",
        }
    )
    m = OpenresolvManager(lambda s: None)
    with mock.patch("subprocess.run", rec):
        config = m.get_base_config()
    assert rec.calls[1][0] == ["resolvconf", "-l", "eth0", "wlan0"]
    assert config.nameservers == [ipaddress.ip_address("9.9.9.9")]
    assert config.search_domains == ["example.com."]


def test_get_base_config_failure_raises():
    rec = Recorder(returncode=2)
    m = OpenresolvManager(lambda s: None)
    with mock.patch("subprocess.run", rec):
        with pytest.raises(subprocess.CalledProcessError):
            m.get_base_config()


def test_mode_and_split_dns():
    m = OpenresolvManager(lambda s: None)
    assert m.mode() == "resolvconf"
    assert m.supports_split_dns() is False