"""Per-record decryption of encrypted profile fields.

Each encrypted attribute on a profile record is decrypted with its own remote
call, normalized through :class:`FieldCodec`, and written to a target key on
the resulting :class:`DecodedProfile`. Plaintexts are cached per
``(record id, source key)`` for the lifetime of a session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

from mentorlink.services.field_codec import DecodedValue, FieldCodec, FieldKind

# Configure logger for this module
logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


class Decryptor(Protocol):
    """Remote decrypt capability."""

    async def decrypt(self, ciphertext: str) -> str: ...


@dataclass(frozen=True)
class FieldSpec:
    """How one encrypted attribute maps onto the decoded profile.

    Attributes:
        source_key: Record key holding the ciphertext (e.g. ``company_encrypted``)
        target_key: Key written on the decoded profile (e.g. ``company``)
        kind: Expected shape of the decoded value
        fallback_key: Plaintext key on the same record used when no ciphertext
            is present or decryption fails
        default: Value used when neither ciphertext nor fallback yields one
    """

    source_key: str
    target_key: str
    kind: FieldKind = FieldKind.SCALAR
    fallback_key: str | None = None
    default: DecodedValue | None = None

    def empty_value(self) -> DecodedValue:
        if self.default is not None:
            return list(self.default) if isinstance(self.default, list) else self.default
        return [] if self.kind is FieldKind.LIST else ""


@dataclass
class DecodedProfile:
    """Normalized view of a record's encrypted attributes."""

    record_id: str | None
    values: dict[str, DecodedValue] = field(default_factory=dict)
    decrypted_fields: tuple[str, ...] = ()
    failed_fields: tuple[str, ...] = ()

    def __getitem__(self, key: str) -> DecodedValue:
        return self.values[key]

    def get(self, key: str, default: DecodedValue | None = None) -> DecodedValue | None:
        return self.values.get(key, default)

    @property
    def complete(self) -> bool:
        """True when every attempted field decrypted successfully."""
        return not self.failed_fields


class DecryptionCache:
    """Session-scoped, append-only store of decrypted plaintexts.

    Also tracks in-flight decrypt calls so concurrent misses on one key share
    a single remote call.
    """

    def __init__(self) -> None:
        self._values: dict[CacheKey, str] = {}
        self._inflight: dict[CacheKey, asyncio.Task[str]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: CacheKey) -> str | None:
        value = self._values.get(key)
        if value is not None:
            self.hits += 1
        return value

    def store(self, key: CacheKey, plaintext: str) -> None:
        self._values.setdefault(key, plaintext)

    def inflight(self, key: CacheKey) -> asyncio.Task[str] | None:
        return self._inflight.get(key)

    def track(self, key: CacheKey, task: asyncio.Task[str]) -> None:
        self._inflight[key] = task

    def release(self, key: CacheKey) -> None:
        self._inflight.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


def _as_record(record: Mapping[str, Any] | BaseModel) -> Mapping[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump()
    return record


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return bool(value)
    return True


class ProfileDecryptor:
    """Decrypt and normalize the encrypted attributes of profile records."""

    def __init__(self, decryptor: Decryptor, cache: DecryptionCache | None = None) -> None:
        self._decryptor = decryptor
        self.cache = cache if cache is not None else DecryptionCache()

    async def resolve(
        self,
        record: Mapping[str, Any] | BaseModel,
        field_specs: Iterable[FieldSpec],
        defaults: Mapping[str, DecodedValue] | None = None,
    ) -> DecodedProfile:
        """Resolve every field in ``field_specs`` for one record.

        Decrypt calls for the record run concurrently. A failed call leaves that
        field at its default and is logged; it never fails the other fields.

        Args:
            record: Raw profile record (mapping or pydantic model)
            field_specs: Attributes to resolve
            defaults: Caller-supplied defaults keyed by target key

        Returns:
            The decoded profile once every decrypt call has settled
        """
        data = _as_record(record)
        raw_id = data.get("id")
        record_id = str(raw_id) if raw_id is not None else None
        specs = list(field_specs)
        overrides = defaults or {}

        values: dict[str, DecodedValue] = {
            spec.target_key: self._default_for(spec, data, overrides) for spec in specs
        }
        pending = [spec for spec in specs if _has_value(data.get(spec.source_key))]
        if not pending:
            return DecodedProfile(record_id=record_id, values=values)

        results = await asyncio.gather(
            *(self._plaintext(record_id, spec.source_key, str(data[spec.source_key])) for spec in pending),
            return_exceptions=True,
        )

        decrypted: list[str] = []
        failed: list[str] = []
        for spec, result in zip(pending, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "Failed to decrypt %s for record %s: %s",
                    spec.source_key,
                    record_id,
                    result,
                )
                failed.append(spec.target_key)
                continue
            decoded = FieldCodec.decode(result, spec.kind)
            if _has_value(decoded) or spec.kind is FieldKind.LIST:
                values[spec.target_key] = decoded
            decrypted.append(spec.target_key)

        return DecodedProfile(
            record_id=record_id,
            values=values,
            decrypted_fields=tuple(decrypted),
            failed_fields=tuple(failed),
        )

    async def _plaintext(self, record_id: str | None, source_key: str, ciphertext: str) -> str:
        if record_id is None:
            # No identity to key the cache on
            return await self._decryptor.decrypt(ciphertext)

        key = (record_id, source_key)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        task = self.cache.inflight(key)
        if task is None:
            self.cache.misses += 1
            task = asyncio.ensure_future(self._decrypt_and_store(key, ciphertext))
            self.cache.track(key, task)
        return await asyncio.shield(task)

    async def _decrypt_and_store(self, key: CacheKey, ciphertext: str) -> str:
        try:
            plaintext = await self._decryptor.decrypt(ciphertext)
            self.cache.store(key, plaintext)
            return plaintext
        finally:
            self.cache.release(key)

    @staticmethod
    def _default_for(
        spec: FieldSpec,
        record: Mapping[str, Any],
        overrides: Mapping[str, DecodedValue],
    ) -> DecodedValue:
        if spec.target_key in overrides:
            return overrides[spec.target_key]
        if spec.fallback_key and _has_value(record.get(spec.fallback_key)):
            return FieldCodec.decode(record[spec.fallback_key], spec.kind)
        return spec.empty_value()
