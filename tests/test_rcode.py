import pytest

from resolvkit.rcode import from_string


@pytest.mark.parametrize(
    "rcode, expected",
    [
        ("NoError", 0),
        ("NOERROR", 0),
        ("noerror", 0),
        ("nOeRrOr", 0),
        ("foo", -1),
    ],
)
def test_from_string(rcode, expected):
    assert from_string(rcode) == expected


@pytest.mark.parametrize(
    "rcode, expected",
    [("NXDOMAIN", 3), ("servfail", 2), ("BADSIG", 16), ("BADVERS", 16), ("BadCookie", 23), ("", -1)],
)
def test_table_values(rcode, expected):
    assert from_string(rcode) == expected