"""
Selector profile storage, keyed by hostname.

Hand-maintained profiles always win over stored ones. The store does no
cache invalidation; a put() simply replaces the hostname's profile.
"""
import asyncio
import json
from pathlib import Path
from typing import Dict, Optional

from site_extractor.models.selectors import MANUAL_SITE_PROFILES, SiteSelectorProfile
from site_extractor.utils.logger import LayerLogger


class ProfileStore:
    """Base store: manual profiles first, then whatever the subclass holds."""

    def __init__(self, manual_profiles: Optional[Dict[str, SiteSelectorProfile]] = None):
        self.manual_profiles = MANUAL_SITE_PROFILES if manual_profiles is None else manual_profiles
        self.logger = LayerLogger("profile_store")

    async def get(self, hostname: str) -> Optional[SiteSelectorProfile]:
        hostname = hostname.lower()
        if hostname in self.manual_profiles:
            self.logger.log_decision("profile_lookup", "manual_profile", hostname=hostname)
            return self.manual_profiles[hostname]
        profile = await self._load(hostname)
        self.logger.log_decision(
            "profile_lookup",
            "stored_profile" if profile else "defaults_only",
            hostname=hostname,
        )
        return profile

    async def put(self, hostname: str, profile: SiteSelectorProfile) -> None:
        await self._save(hostname.lower(), profile)
        self.logger.log_action(
            "profile_saved",
            "completed",
            hostname=hostname,
            fields=[field.value for field in profile.selectors],
        )

    async def _load(self, hostname: str) -> Optional[SiteSelectorProfile]:
        raise NotImplementedError

    async def _save(self, hostname: str, profile: SiteSelectorProfile) -> None:
        raise NotImplementedError


class InMemoryProfileStore(ProfileStore):
    def __init__(self, manual_profiles: Optional[Dict[str, SiteSelectorProfile]] = None):
        super().__init__(manual_profiles)
        self._profiles: Dict[str, SiteSelectorProfile] = {}

    async def _load(self, hostname: str) -> Optional[SiteSelectorProfile]:
        return self._profiles.get(hostname)

    async def _save(self, hostname: str, profile: SiteSelectorProfile) -> None:
        self._profiles[hostname] = profile


class JsonFileProfileStore(ProfileStore):
    """All profiles in one JSON file: {hostname: profile}."""

    def __init__(self, path: str, manual_profiles: Optional[Dict[str, SiteSelectorProfile]] = None):
        super().__init__(manual_profiles)
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            self.logger.log_error(f"Profile store unreadable: {e}", error_type="parse_failure", path=str(self.path))
            return {}
        return data if isinstance(data, dict) else {}

    async def _load(self, hostname: str) -> Optional[SiteSelectorProfile]:
        raw = self._read_all().get(hostname)
        return SiteSelectorProfile.model_validate(raw) if raw else None

    async def _save(self, hostname: str, profile: SiteSelectorProfile) -> None:
        async with self._lock:
            data = self._read_all()
            data[hostname] = profile.model_dump(mode="json")
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
