from __future__ import annotations

from ..common.exceptions import UnknownProjectError
from .base import BaseProfile
from .bisq import BisqProfile
from .bitcoinsafe import BitcoinSafeProfile
from .electrum import ElectrumProfile
from .guix import BitcoinCoreProfile, BitcoinKnotsProfile
from .sparrow import SparrowProfile
from .specter import SpecterProfile
from .wasabi import WasabiProfile


class ProjectRegistry:
    """Central registry of every supported project profile."""

    def __init__(self):
        self._profiles: dict[str, BaseProfile] = {}
        self._register_defaults()

    def _register_defaults(self):
        profiles = [
            BitcoinCoreProfile(), BitcoinKnotsProfile(), BitcoinSafeProfile(),
            ElectrumProfile(), BisqProfile(), SparrowProfile(), SpecterProfile(), WasabiProfile(),
        ]
        for p in profiles:
            self.register(p)

    def register(self, profile: BaseProfile):
        self._profiles[profile.project_id] = profile

    def get_profile(self, project_id: str) -> BaseProfile | None:
        return self._profiles.get((project_id or "").strip().lower())

    def require(self, project_id: str) -> BaseProfile:
        profile = self.get_profile(project_id)
        if profile is None:
            raise UnknownProjectError(project_id)
        return profile

    def list_projects(self) -> list[str]:
        return sorted(self._profiles)


# Singleton
registry = ProjectRegistry()
