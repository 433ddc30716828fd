import re

import pytest

from cephcrypto import check_password, hash_password, query_password_salt
from cephcrypto.digest import sha256_bytes
from cephcrypto.errors import InvalidArgument


@pytest.mark.asyncio
@pytest.mark.parametrize("encoding", ["base64", "hex"])
async def test_fresh_hash_checks_out(encoding):
    hashed = await hash_password("correct horse", None, encoding)
    assert hashed.startswith(f"$ceph1${encoding}$")
    assert await check_password("correct horse", hashed) is True
    assert await check_password("wrong horse", hashed) is False


@pytest.mark.asyncio
async def test_base64_hash_has_no_padding():
    hashed = await hash_password("pw")
    _, _, _, salt, digest = hashed.split("$")
    assert "=" not in salt and "=" not in digest
    assert len(salt) == 22 and len(digest) == 43


@pytest.mark.asyncio
async def test_hex_hash_layout():
    hashed = await hash_password("pw", None, "hex")
    assert re.match(r"^\$ceph1\$hex\$[0-9a-f]{32}\$[0-9a-f]{64}$", hashed)


@pytest.mark.asyncio
async def test_rehash_with_extracted_salt_is_identical():
    hashed = await hash_password("p@ss")
    salt = query_password_salt(hashed)
    assert await hash_password("p@ss", salt) == hashed
    assert await hash_password("p@ss", salt + "==") == hashed


@pytest.mark.asyncio
async def test_rehash_hex_with_supplied_salt():
    salt = "00112233445566778899aabbccddeeff"
    hashed = await hash_password("p@ss", salt, "hex")
    assert hashed.split("$")[3] == salt
    assert await hash_password("p@ss", salt, "hex") == hashed
    assert await check_password("p@ss", hashed)


@pytest.mark.asyncio
async def test_hash_is_sha256_of_password_and_salt():
    salt = bytes(range(16))
    hashed = await hash_password("pw", salt.hex(), "hex")
    assert hashed.split("$")[4] == sha256_bytes(b"pw" + salt).hex()


@pytest.mark.asyncio
async def test_non_ascii_password_hashes_low_byte_of_each_code_unit():
    salt = bytes(range(16))
    # "\u00e4" keeps 0xe4, "\u20ac" keeps 0xac
    known = "$ceph1$hex$" + salt.hex() + "$" + sha256_bytes(b"p\xe4sswort\xac" + salt).hex()
    assert await check_password("p\u00e4sswort\u20ac", known)
    assert await hash_password("p\u00e4sswort\u20ac", salt.hex(), "hex") == known
    assert not await check_password("passwort\u20ac", known)


@pytest.mark.asyncio
async def test_hex_salt_queried_as_base64():
    hashed = await hash_password("pw", "000102030405060708090a0b0c0d0e0f", "hex")
    assert query_password_salt(hashed) == "AAECAwQFBgcICQoLDA0ODw"


@pytest.mark.parametrize("bad", ["nope", "$ceph1$rot13$a$b", "$ceph1$base64$onlytwo"])
def test_query_salt_malformed(bad):
    assert query_password_salt(bad) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [
    ("", None, "base64"),
    ("pw", "", "base64"),
    ("pw", None, "base32"),
    ("pw", "====", "base64"),
    ("pw", "no!base64", "base64"),
    ("pw", "zz", "hex"),
])
async def test_hash_password_invalid_arguments(args):
    with pytest.raises(InvalidArgument):
        await hash_password(*args)


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", ["", "plain", "$ceph1$base32$a$b", "$ceph2$hex$00$00"])
async def test_check_password_rejects_malformed_hash(bad):
    with pytest.raises(InvalidArgument):
        await check_password("pw", bad)
