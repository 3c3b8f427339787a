# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import pytest

import common.parsing as parsing


def test_interpret_as_bool():
    assert parsing.interpret_as_bool("True")
    assert parsing.interpret_as_bool("TrUe")
    assert parsing.interpret_as_bool("yes")
    assert parsing.interpret_as_bool("1")
    assert parsing.interpret_as_bool(1)
    assert parsing.interpret_as_bool(True)
    assert not parsing.interpret_as_bool("False")
    assert not parsing.interpret_as_bool("Truee")
    assert not parsing.interpret_as_bool("no")
    assert not parsing.interpret_as_bool(0)
    assert not parsing.interpret_as_bool(False)


def test_url_safe_round_trip_without_padding():
    encoded = parsing.object_to_url_safe({"kty": "OKP", "crv": "Ed25519", "x": "abc"})
    assert "=" not in encoded
    assert parsing.object_from_url_safe(encoded) == {"kty": "OKP", "crv": "Ed25519", "x": "abc"}


def test_canonical_json_is_order_independent():
    first = {"name": "Ada", "address": {"zip": "3000", "city": "Bern"}}
    second = {"address": {"city": "Bern", "zip": "3000"}, "name": "Ada"}
    assert parsing.canonical_json(first) == parsing.canonical_json(second)
    assert parsing.canonical_json(first) == '{"address":{"city":"Bern","zip":"3000"},"name":"Ada"}'


def test_canonical_json_keeps_unicode():
    assert parsing.canonical_json({"name": "Zoë"}) == '{"name":"Zoë"}'


def test_commitment_hash():
    # sha256 of '{}'
    assert parsing.commitment_hash({}) == "44136fa355b3678a1146ad16f7e8649e94fb4fc21fe77e8310c060f61caaff8a"
    claims = {"birthDate": "1990-01-01", "name": "Ada"}
    assert parsing.commitment_hash(claims) == parsing.commitment_hash(dict(reversed(list(claims.items()))))
    assert parsing.commitment_hash(claims) != parsing.commitment_hash({**claims, "name": "Bob"})
    assert len(parsing.commitment_hash(claims)) == 64
    assert parsing.commitment_hash(claims) == parsing.commitment_hash(claims).lower()


@pytest.mark.parametrize("value", [None, "", "   ", "\t\n", 42, ["a"]])
def test_is_blank(value):
    assert parsing.is_blank(value)


@pytest.mark.parametrize("value", ["a", " did:iss:A "])
def test_is_not_blank(value):
    assert not parsing.is_blank(value)
