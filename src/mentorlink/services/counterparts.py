"""Counterpart profiles shown next to inbox items."""

from __future__ import annotations

from dataclasses import dataclass, field

from mentorlink.core.settings import Settings, settings
from mentorlink.schemas.requests import RawProfile
from mentorlink.services.field_codec import FieldKind
from mentorlink.services.profile_decryptor import FieldSpec, ProfileDecryptor
from mentorlink.utils.formatting import format_company_name, resolve_display_name

# The four encrypted profile attributes, each with its plaintext fallback
PROFILE_FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("company_encrypted", "company", FieldKind.SCALAR, fallback_key="company"),
    FieldSpec("career_level_encrypted", "career_level", FieldKind.SCALAR, fallback_key="career_level"),
    FieldSpec("location_encrypted", "location", FieldKind.SCALAR, fallback_key="location"),
    FieldSpec("affinity_tags_encrypted", "affinity_tags", FieldKind.LIST, fallback_key="affinity_tags"),
)


@dataclass
class CounterpartProfile:
    """Decrypted, display-ready profile of the other party of a request."""

    id: str
    username: str
    display_name: str
    avatar: str
    job_title: str
    company: str
    career_level: str = ""
    location: str = ""
    affinity_tags: list[str] = field(default_factory=list)
    bio: str = ""
    skills: list[str] = field(default_factory=list)
    years_experience: int = 0


class CounterpartResolver:
    """Build :class:`CounterpartProfile` values through a :class:`ProfileDecryptor`."""

    def __init__(self, decryptor: ProfileDecryptor, config: Settings | None = None) -> None:
        self._decryptor = decryptor
        self._config = config or settings

    async def resolve(self, raw: RawProfile) -> CounterpartProfile:
        """Decrypt ``raw`` and fill display fallbacks.

        Company falls back to the unknown-company label when absent, and to the
        hidden-company label when decryption failed.
        """
        decoded = await self._decryptor.resolve(raw, PROFILE_FIELD_SPECS)

        company = format_company_name(str(decoded.get("company") or ""))
        if "company" in decoded.failed_fields:
            company = self._config.hidden_company_label
        elif not company:
            company = self._config.unknown_company_label

        username = raw.username or self._config.unknown_user_label
        tags = decoded.get("affinity_tags") or []

        return CounterpartProfile(
            id=raw.id,
            username=username,
            display_name=resolve_display_name(raw.display_name, raw.username, self._config.unknown_user_label),
            avatar=raw.avatar or self._config.default_avatar,
            job_title=raw.job_title or self._config.default_job_title,
            company=company,
            career_level=str(decoded.get("career_level") or ""),
            location=str(decoded.get("location") or ""),
            affinity_tags=list(tags) if isinstance(tags, list) else [str(tags)],
            bio=raw.mentor_bio or "",
            skills=list(raw.mentor_expertise or []),
            years_experience=raw.years_experience or 0,
        )
