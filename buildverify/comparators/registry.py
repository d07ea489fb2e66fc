from __future__ import annotations

from typing import Callable, Optional

from ..common.exceptions import InvalidParameterError
from .appimage import AppImageComparator
from .authenticode import AuthenticodeComparator
from .base import Comparator
from .java import JarComparator, JimageComparator
from .member import ArchiveMemberComparator
from .plain import PlainComparator

_FACTORIES: dict[str, Callable[..., Comparator]] = {
    "plain": lambda engine=None: PlainComparator(),
    "authenticode": lambda engine=None: AuthenticodeComparator(engine=engine),
    "appimage": lambda engine=None: AppImageComparator(),
    "member": lambda engine=None: ArchiveMemberComparator(),
    "jar": lambda engine=None: JarComparator(),
    "jimage": lambda engine=None: JimageComparator(),
}


def list_comparators() -> list[str]:
    return sorted(_FACTORIES)


def get_comparator(name: str, engine: Optional[str] = None) -> Comparator:
    """Comparator instance for ``name``; ``engine`` is used by osslsigncode fallback."""
    factory = _FACTORIES.get(name)
    if factory is None:
        raise InvalidParameterError(
            f"Unknown comparison method: {name} (available: {', '.join(list_comparators())})",
            "method",
        )
    return factory(engine=engine)
