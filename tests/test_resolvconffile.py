import io
from ipaddress import ip_address

import pytest

from resolvkit.resolvconffile import (
    ResolvConf,
    name_servers,
    name_servers_with_port,
    parse,
    parse_file,
    to_fqdn,
    without_trailing_dot,
)


@pytest.mark.parametrize(
    "text, want",
    [
        ("nameserver 192.168.0.100", ResolvConf(nameservers=[ip_address("192.168.0.100")])),
        ("nameserver 192.168.0.100 # comment", ResolvConf(nameservers=[ip_address("192.168.0.100")])),
        ("nameserver 192.168.0.100#", ResolvConf(nameservers=[ip_address("192.168.0.100")])),
        ("# nameserver 192.168.0.100", ResolvConf()),
        ("search tailsacle.com", ResolvConf(search_domains=["tailsacle.com."])),
        ("search tailsacle.com # typo", ResolvConf(search_domains=["tailsacle.com."])),
    ],
)
def test_parse_valid(text, want):
    assert parse(text) == want


@pytest.mark.parametrize(
    "text",
    [
        "nameserver #192.168.0.100",
        "nameserver",
        "nameserver192.168.0.100",
        "searchtailsacle.com",
        "search",
    ],
)
def test_parse_invalid(text):
    with pytest.raises(ValueError):
        parse(text)


def test_parse_many_search_domains():
    text = (
        "search search-01.example search-02.example search-03.example search-04.example "
        "search-05.example search-06.example search-07.example search-08.example "
        "search-09.example search-10.example search-11.example search-12.example "
        "search-13.example search-14.example search-15.example\n"
    )
    want = [
        "search-01.example.",
        "search-02.example.",
        "search-03.example.",
        "search-04.example.",
        "search-05.example.",
        "search-06.example.",
        "search-07.example.",
        "search-08.example.",
        "search-09.example.",
        "search-10.example.",
        "search-11.example.",
        "search-12.example.",
        "search-13.example.",
        "search-14.example.",
        "search-15.example.",
    ]
    assert parse(text) == ResolvConf(search_domains=want)


def test_parse_bytes():
    assert parse(b"nameserver 8.8.8.8\n").nameservers == [ip_address("8.8.8.8")]


def test_render():
    cfg = ResolvConf(
        nameservers=[ip_address("8.8.8.8"), ip_address("8.8.4.4")],
        search_domains=["controld.com."],
    )
    want = (
        "# resolv.conf(5) file generated by ctrld\n"
        "# DO NOT EDIT THIS FILE BY HAND -- CHANGES WILL BE OVERWRITTEN\n\n"
        "nameserver 8.8.8.8\n"
        "nameserver 8.8.4.4\n"
        "search controld.com\n"
    )
    assert cfg.render() == want


def test_write_round_trip_text_and_binary():
    cfg = ResolvConf(nameservers=[ip_address("1.1.1.1"), ip_address("2606:4700::1111")],
                     search_domains=["a.example.", "b.example."])
    text = io.StringIO()
    cfg.write(text)
    assert parse(text.getvalue()) == cfg
    raw = io.BytesIO()
    cfg.write(raw)
    assert raw.getvalue() == text.getvalue().encode()


def test_to_fqdn():
    assert to_fqdn("controld.com") == "controld.com."
    assert to_fqdn("controld.com.") == "controld.com."
    assert to_fqdn("") == "."


@pytest.mark.parametrize("name", ["-bad.example", "a..b", "x" * 64 + ".com", "bad!.com"])
def test_to_fqdn_invalid(name):
    with pytest.raises(ValueError):
        to_fqdn(name)


def test_to_fqdn_too_long():
    with pytest.raises(ValueError):
        to_fqdn(".".join(["abcdefghij"] * 30))


def test_without_trailing_dot():
    assert without_trailing_dot("controld.com.") == "controld.com"
    assert without_trailing_dot("controld.com") == "controld.com"


def test_parse_file_and_name_servers(tmp_path):
    path = tmp_path / "resolv.conf"
    path.write_text("nameserver 192.168.0.100\nnameserver fe80::1\nsearch lan\n")
    assert parse_file(path).search_domains == ["lan."]
    assert name_servers(path) == ["192.168.0.100", "fe80::1"]
    assert name_servers_with_port(path) == ["192.168.0.100:53", "[fe80::1]:53"]


def test_parse_file_too_large(tmp_path):
    path = tmp_path / "resolv.conf"
    path.write_text("#" * (11 << 10))
    with pytest.raises(ValueError, match="unexpectedly large"):
        parse_file(path)


def test_name_servers_missing_file(tmp_path):
    assert name_servers(tmp_path / "nope") == []
    assert name_servers_with_port(tmp_path / "nope") == []