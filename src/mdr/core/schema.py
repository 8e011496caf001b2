"""Store schema variants, selected once from the server version at setup."""

from __future__ import annotations

from enum import Enum

from mdr.errors import ConfigurationError

MIN_SUPPORTED_MAJOR = 5
LEGACY_DOC_TYPE = "metrics"


class TargetSchema(Enum):
    TYPED = "typed"  # 5.x - 6.x: bulk actions carry a mapping type
    TYPELESS = "typeless"  # 7.x and later

    @property
    def doc_type(self) -> str | None:
        return LEGACY_DOC_TYPE if self is TargetSchema.TYPED else None

    @classmethod
    def for_major(cls, major: int) -> TargetSchema:
        if major < MIN_SUPPORTED_MAJOR:
            raise ConfigurationError(f"elasticsearch version not supported: {major}")
        return cls.TYPED if major <= 6 else cls.TYPELESS

    @classmethod
    def for_version(cls, version: str) -> TargetSchema:
        """Pick the schema for a version string such as ``"8.13.2"``."""
        return cls.for_major(major_version(version))


def major_version(version: str) -> int:
    head = version.split(".", 1)[0]
    try:
        return int(head)
    except ValueError:
        raise ConfigurationError(f"elasticsearch version not supported: {version!r}") from None
