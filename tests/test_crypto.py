"""
tests/test_crypto.py

Keys and addresses.

  ADDRESS   Derived from the public key; module accounts are fixed.
  SIGNING   verify_detached needs only the public key hex and never raises.
"""

import hashlib

import pytest

from usdm.core.crypto import (
    ADDRESS_PREFIX,
    Ed25519KeyManager,
    address_from_public_key,
    is_valid_address,
    module_address,
)


class TestAddress:

    def test_address_derivation(self, oracle_key):
        raw      = bytes.fromhex(oracle_key.public_key_hex)
        expected = ADDRESS_PREFIX + hashlib.sha256(raw).digest()[:20].hex()
        assert oracle_key.address == expected
        assert address_from_public_key(oracle_key.public_key_hex) == expected
        assert is_valid_address(expected)

    def test_short_public_key_rejected(self):
        with pytest.raises(ValueError):
            address_from_public_key("ab" * 16)

    def test_module_address_is_stable(self):
        assert module_address("stablecoin") == module_address("stablecoin")
        assert module_address("stablecoin") != module_address("oracle")
        assert is_valid_address(module_address("stablecoin"))

    @pytest.mark.parametrize("address", [
        None,
        "",
        "cosmos1" + "a" * 40,
        ADDRESS_PREFIX + "A" * 40,
        ADDRESS_PREFIX + "a" * 39,
    ])
    def test_malformed_addresses(self, address):
        assert not is_valid_address(address)


class TestSigning:

    def test_detached_verification(self, oracle_key):
        sig = oracle_key.sign(b"price")
        assert "=" not in sig
        assert Ed25519KeyManager.verify_detached(b"price", sig, oracle_key.public_key_hex)

    def test_wrong_data_or_key(self, oracle_key, oracle2_key):
        sig = oracle_key.sign(b"price")
        assert not Ed25519KeyManager.verify_detached(b"other", sig, oracle_key.public_key_hex)
        assert not Ed25519KeyManager.verify_detached(b"price", sig, oracle2_key.public_key_hex)

    @pytest.mark.parametrize("sig, key", [
        (None,        "00" * 32),
        ("!!notb64",  "00" * 32),
        ("AAAA",      "00" * 32),
        ("AAAA",      "not-hex"),
    ])
    def test_garbage_never_raises(self, sig, key):
        assert Ed25519KeyManager.verify_detached(b"price", sig, key) is False

    def test_repr_shows_address_only(self, oracle_key):
        assert repr(oracle_key) == f"Ed25519KeyManager(address={oracle_key.address})"
