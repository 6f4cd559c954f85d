import asyncio
from unittest.mock import AsyncMock

import pytest

from mentorlink.services.api_client import ApiError, MentorshipApiClient
from mentorlink.services.field_codec import FieldKind
from mentorlink.services.profile_decryptor import DecryptionCache, FieldSpec, ProfileDecryptor

SPECS = (
    FieldSpec("company_encrypted", "company", FieldKind.SCALAR, fallback_key="company"),
    FieldSpec("location_encrypted", "location", FieldKind.SCALAR),
    FieldSpec("tags_encrypted", "tags", FieldKind.LIST),
)


def _record(**overrides):
    record = {
        "id": "u-1",
        "company_encrypted": "enc:acme",
        "location_encrypted": "enc:Berlin",
        "tags_encrypted": 'enc:["Python", "Mentoring"]',
    }
    record.update(overrides)
    return record


@pytest.fixture
def mock_decryptor():
    client = AsyncMock(spec=MentorshipApiClient)

    async def decrypt(ciphertext):
        if ciphertext.startswith("broken:"):
            raise ApiError("decrypt failed")
        return ciphertext.removeprefix("enc:")

    client.decrypt.side_effect = decrypt
    return client


@pytest.mark.asyncio
async def test_resolve_decodes_every_field(mock_decryptor):
    profile = await ProfileDecryptor(mock_decryptor).resolve(_record(), SPECS)

    assert profile.record_id == "u-1"
    assert profile["company"] == "acme"
    assert profile["location"] == "Berlin"
    assert profile["tags"] == ["Python", "Mentoring"]
    assert profile.complete
    assert set(profile.decrypted_fields) == {"company", "location", "tags"}


@pytest.mark.asyncio
async def test_second_resolve_is_served_from_cache(mock_decryptor):
    decryptor = ProfileDecryptor(mock_decryptor, DecryptionCache())

    first = await decryptor.resolve(_record(), SPECS)
    second = await decryptor.resolve(_record(), SPECS)

    assert mock_decryptor.decrypt.await_count == 3
    assert first.values == second.values
    assert decryptor.cache.hits == 3
    assert len(decryptor.cache) == 3


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_decrypt_call(mock_decryptor):
    release = asyncio.Event()

    async def slow_decrypt(ciphertext):
        await release.wait()
        return ciphertext.removeprefix("enc:")

    mock_decryptor.decrypt.side_effect = slow_decrypt
    decryptor = ProfileDecryptor(mock_decryptor)

    pending = [asyncio.ensure_future(decryptor.resolve(_record(), SPECS)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    profiles = await asyncio.gather(*pending)

    assert mock_decryptor.decrypt.await_count == 3
    assert all(profile["company"] == "acme" for profile in profiles)


@pytest.mark.asyncio
async def test_one_failed_field_does_not_affect_the_others(mock_decryptor):
    record = _record(location_encrypted="broken:xyz")

    profile = await ProfileDecryptor(mock_decryptor).resolve(record, SPECS)

    assert profile["company"] == "acme"
    assert profile["tags"] == ["Python", "Mentoring"]
    assert profile["location"] == ""
    assert profile.failed_fields == ("location",)
    assert not profile.complete


@pytest.mark.asyncio
async def test_failed_decrypt_is_retried_on_next_resolve(mock_decryptor):
    decryptor = ProfileDecryptor(mock_decryptor)
    record = _record(location_encrypted="broken:xyz")

    await decryptor.resolve(record, SPECS)
    await decryptor.resolve(record, SPECS)

    calls = [call.args[0] for call in mock_decryptor.decrypt.await_args_list]
    assert calls.count("broken:xyz") == 2
    assert calls.count("enc:acme") == 1


@pytest.mark.asyncio
async def test_missing_ciphertext_uses_fallback_then_default(mock_decryptor):
    specs = (
        FieldSpec("company_encrypted", "company", FieldKind.SCALAR, fallback_key="company"),
        FieldSpec("level_encrypted", "level", FieldKind.SCALAR, default="Unspecified"),
        FieldSpec("tags_encrypted", "tags", FieldKind.LIST, fallback_key="tags"),
    )
    record = {"id": "u-2", "company": "Plain Co", "tags": "a, b"}

    profile = await ProfileDecryptor(mock_decryptor).resolve(record, specs)

    assert profile["company"] == "Plain Co"
    assert profile["level"] == "Unspecified"
    assert profile["tags"] == ["a", "b"]
    mock_decryptor.decrypt.assert_not_awaited()


@pytest.mark.asyncio
async def test_caller_defaults_take_precedence(mock_decryptor):
    record = {"id": "u-3", "company": "Plain Co", "company_encrypted": "broken:1"}

    profile = await ProfileDecryptor(mock_decryptor).resolve(
        record, SPECS[:1], defaults={"company": "Hidden"}
    )

    assert profile["company"] == "Hidden"
    assert profile.failed_fields == ("company",)


@pytest.mark.asyncio
async def test_empty_plaintext_keeps_scalar_default(mock_decryptor):
    record = {"id": "u-4", "company": "Plain Co", "company_encrypted": "enc:"}

    profile = await ProfileDecryptor(mock_decryptor).resolve(record, SPECS[:1])

    assert profile["company"] == "Plain Co"


@pytest.mark.asyncio
async def test_records_without_id_are_not_cached(mock_decryptor):
    decryptor = ProfileDecryptor(mock_decryptor)
    record = {"company_encrypted": "enc:acme"}

    await decryptor.resolve(record, SPECS[:1])
    await decryptor.resolve(record, SPECS[:1])

    assert mock_decryptor.decrypt.await_count == 2
    assert len(decryptor.cache) == 0


@pytest.mark.asyncio
async def test_cache_is_keyed_per_record(mock_decryptor):
    decryptor = ProfileDecryptor(mock_decryptor)

    first = await decryptor.resolve(_record(id="u-1"), SPECS[:1])
    second = await decryptor.resolve(_record(id="u-9", company_encrypted="enc:globex"), SPECS[:1])

    assert first["company"] == "acme"
    assert second["company"] == "globex"
