"""User preferences persisted in client storage."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import Field, TypeAdapter

from docsynth_realtime.storage.keys import LANGUAGE_KEY, ONBOARDING_KEY, TOKEN_KEY
from docsynth_realtime.storage.slots import StorageSlot
from docsynth_realtime.types import KeyValueStore, TokenProvider

DEFAULT_LANGUAGE = "en"


class OnboardingState(StrEnum):
    """Outcome of the onboarding wizard."""

    COMPLETED = "completed"
    SKIPPED = "skipped"


def _migrate_legacy_onboarding(data: object) -> object:
    # The dashboard writes the raw strings "true" or "skipped"
    if data is True or data == "true":
        return OnboardingState.COMPLETED.value
    return data


_ONBOARDING: TypeAdapter[OnboardingState | None] = TypeAdapter(OnboardingState | None)

_LANGUAGE: TypeAdapter[str] = TypeAdapter(
    Annotated[str, Field(pattern=r"^[a-z]{2}(-[A-Z]{2})?$")]
)


def _no_onboarding() -> OnboardingState | None:
    return None


def _default_language() -> str:
    return DEFAULT_LANGUAGE


class OnboardingPreference:
    """Whether the user finished or skipped onboarding."""

    def __init__(self, storage: KeyValueStore) -> None:
        self._slot: StorageSlot[OnboardingState | None] = StorageSlot(
            storage,
            ONBOARDING_KEY,
            _ONBOARDING,
            default=_no_onboarding,
            migrations={0: _migrate_legacy_onboarding},
        )

    @property
    def state(self) -> OnboardingState | None:
        """Recorded outcome, or None if onboarding was never finished."""
        return self._slot.read()

    @property
    def should_show(self) -> bool:
        return self.state is None

    def complete(self) -> None:
        _ = self._slot.write(OnboardingState.COMPLETED)

    def skip(self) -> None:
        _ = self._slot.write(OnboardingState.SKIPPED)

    def reset(self) -> None:
        _ = self._slot.clear()


class LanguagePreference:
    """Preferred documentation language as a language tag (``en``, ``pt-BR``)."""

    def __init__(self, storage: KeyValueStore) -> None:
        self._slot: StorageSlot[str] = StorageSlot(
            storage,
            LANGUAGE_KEY,
            _LANGUAGE,
            default=_default_language,
            migrations={0: lambda data: data},
        )

    @property
    def language(self) -> str:
        return self._slot.read()

    def set(self, language: str) -> None:
        """Store a language tag.

        Raises:
            pydantic.ValidationError: If the tag is not of the form ``xx`` or ``xx-YY``
        """
        _ = self._slot.write(_LANGUAGE.validate_python(language))


def storage_token_provider(storage: KeyValueStore) -> TokenProvider:
    """Create a token provider reading the dashboard's stored bearer token.

    The token is stored as a raw string, not in a versioned envelope.
    """

    def provide() -> str | None:
        token = storage.get_item(TOKEN_KEY)
        if token is None:
            return None
        return token.strip() or None

    return provide
