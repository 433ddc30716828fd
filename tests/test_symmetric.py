"""
Password-based symmetric envelope: version tags, legacy data, failure as None.
"""

import pytest

from cephcrypto import decrypt_data, encrypt_data, open_data
from cephcrypto.errors import InvalidArgument
from cephcrypto.results import AuthenticationFailed, Decrypted, MalformedInput
from cephcrypto.symmetric import CIPHERS, aes_encrypt, derive_password_key
from cephcrypto.utils import from_object, to_hex


class TestKeyDerivation:

    def test_repeats_password_bytes(self):
        assert derive_password_key("abc", 8) == b"abcabcab"

    def test_uses_low_byte_of_wide_characters(self):
        # U+0141 -> 0x41
        assert derive_password_key("Ł", 4) == b"AAAA"

    def test_default_length_is_aes256(self):
        assert len(derive_password_key("pw")) == 32


@pytest.mark.asyncio
@pytest.mark.parametrize("version", [1, 2])
async def test_round_trip(version):
    encoded = await encrypt_data("top secret", "pw", version)
    assert encoded.startswith(f"{version}$")
    iv_hex = encoded.split("$", 1)[1][:CIPHERS[version].iv_bytes * 2]
    assert len(iv_hex) == CIPHERS[version].iv_bytes * 2
    assert await decrypt_data(encoded, "pw") == "top secret"


@pytest.mark.asyncio
async def test_default_version_is_gcm():
    assert (await encrypt_data("x", "pw")).startswith("2$")


@pytest.mark.asyncio
@pytest.mark.parametrize("version", [1, 2])
async def test_wrong_password_gives_none(version):
    encoded = await encrypt_data("top secret", "pw", version)
    assert await decrypt_data(encoded, "not-pw") is None


@pytest.mark.asyncio
async def test_untagged_data_is_read_as_legacy_cbc():
    iv = bytes(16)
    ct = aes_encrypt(1, derive_password_key("pw"), iv, from_object({"data": "legacy"}, True))
    assert await decrypt_data(to_hex(iv) + to_hex(ct), "pw") == "legacy"


@pytest.mark.asyncio
async def test_corrupt_hex_gives_none():
    assert await decrypt_data("2$zzzz", "pw") is None


@pytest.mark.asyncio
async def test_tampered_ciphertext_gives_none():
    encoded = await encrypt_data("top secret", "pw")
    flipped = encoded[:-1] + ("0" if encoded[-1] != "0" else "1")
    assert await decrypt_data(flipped, "pw") is None


@pytest.mark.asyncio
async def test_missing_data_field_gives_none():
    iv = bytes(12)
    ct = aes_encrypt(2, derive_password_key("pw"), iv, from_object({"other": "x"}))
    assert await decrypt_data("2$" + to_hex(iv) + to_hex(ct), "pw") is None


@pytest.mark.asyncio
async def test_open_data_distinguishes_outcomes():
    encoded = await encrypt_data("payload", "pw")
    assert await open_data(encoded, "pw") == Decrypted("payload")
    assert isinstance(await open_data(encoded, "bad"), AuthenticationFailed)
    assert isinstance(await open_data("2$xyz", "pw"), MalformedInput)


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [
    (None, "pw", 2),
    ("data", "", 2),
    ("data", "pw", 3),
])
async def test_encrypt_invalid_arguments(args):
    with pytest.raises(InvalidArgument):
        await encrypt_data(*args)


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [("", "pw"), ("2$00", ""), ("9$00", "pw")])
async def test_decrypt_invalid_arguments(args):
    with pytest.raises(InvalidArgument):
        await decrypt_data(*args)
