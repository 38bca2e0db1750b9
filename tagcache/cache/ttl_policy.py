"""Freshness profiles: named stale / revalidate / expire durations."""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Union

from tagcache.core.errors import InvalidTTLError, UnknownProfileError


class TTLProfileName(str, Enum):
    """Built-in freshness tiers."""

    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MAX = "max"


@dataclass(frozen=True)
class TTLProfile:
    """Immutable freshness profile, all values in seconds.

    - stale: served as fresh without any check
    - revalidate: past this, served while a background refresh runs
    - expire: hard cutoff, treated as a miss (used as the backend TTL)

    ``stale`` is advisory. A cached read never checks the origin before
    ``revalidate``, so inside one cache the ``stale`` window behaves like
    the rest of the window up to ``revalidate``. It is kept for callers that
    pass freshness on to their own clients (e.g. a Cache-Control max-age).
    """

    stale: int
    revalidate: int
    expire: int

    def __post_init__(self) -> None:
        """Validate 0 <= stale <= revalidate <= expire."""
        if self.stale < 0:
            raise InvalidTTLError("stale cannot be negative", stale=self.stale)
        if self.expire <= 0:
            raise InvalidTTLError("expire must be positive", expire=self.expire)
        if not self.stale <= self.revalidate <= self.expire:
            raise InvalidTTLError(
                f"TTL profile must satisfy stale <= revalidate <= expire "
                f"(got {self.stale}/{self.revalidate}/{self.expire})",
                stale=self.stale,
                revalidate=self.revalidate,
                expire=self.expire,
            )


DEFAULT_PROFILES: Mapping[str, TTLProfile] = MappingProxyType({
    TTLProfileName.SECONDS.value: TTLProfile(stale=1, revalidate=5, expire=60),
    TTLProfileName.MINUTES.value: TTLProfile(stale=60, revalidate=300, expire=3600),
    TTLProfileName.HOURS.value: TTLProfile(stale=300, revalidate=3600, expire=86400),
    TTLProfileName.DAYS.value: TTLProfile(stale=300, revalidate=86400, expire=604800),
    TTLProfileName.WEEKS.value: TTLProfile(stale=300, revalidate=604800, expire=2592000),
    TTLProfileName.MAX.value: TTLProfile(stale=300, revalidate=2592000, expire=31536000),
})


class TTLPolicy:
    """Read-only registry of freshness profiles.

    Built once at startup from the defaults plus any overrides; lookups are
    pure and never mutate the registry.

    Usage:
        policy = TTLPolicy({"catalog": {"stale": 60, "revalidate": 600, "expire": 3600}})
        policy.resolve("hours").expire  # 86400
        policy.resolve("catalog")
        policy.custom(stale=10, revalidate=30, expire=120)
    """

    def __init__(self, overrides: Optional[Mapping[str, Mapping[str, int]]] = None):
        """Initialize the policy.

        Args:
            overrides: Extra or replacement profiles as plain mappings.

        Raises:
            InvalidTTLError: If an override is incomplete or inconsistent.
        """
        profiles: Dict[str, TTLProfile] = dict(DEFAULT_PROFILES)
        for name, values in (overrides or {}).items():
            profiles[name] = self._profile_from_mapping(name, values)
        self._profiles: Mapping[str, TTLProfile] = MappingProxyType(profiles)

    @property
    def profiles(self) -> Mapping[str, TTLProfile]:
        """All registered profiles (read-only view)."""
        return self._profiles

    def resolve(self, profile: Union[TTLProfileName, str]) -> TTLProfile:
        """Look up a profile by name.

        Raises:
            UnknownProfileError: If the name is not registered.
        """
        name = profile.value if isinstance(profile, TTLProfileName) else profile
        try:
            return self._profiles[name]
        except KeyError:
            raise UnknownProfileError(str(name)) from None

    @staticmethod
    def custom(stale: int, revalidate: int, expire: int) -> TTLProfile:
        """Build a one-off profile outside the registry.

        Raises:
            InvalidTTLError: If stale <= revalidate <= expire does not hold.
        """
        return TTLProfile(stale=stale, revalidate=revalidate, expire=expire)

    @staticmethod
    def _profile_from_mapping(name: str, values: Mapping[str, int]) -> TTLProfile:
        missing = {"stale", "revalidate", "expire"} - set(values)
        if missing:
            raise InvalidTTLError(
                f"TTL profile {name!r} is missing {sorted(missing)}", profile=name
            )
        return TTLProfile(
            stale=int(values["stale"]),
            revalidate=int(values["revalidate"]),
            expire=int(values["expire"]),
        )
