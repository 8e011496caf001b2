"""Exceptions raised by the document router.

Tag lookups that fall back to a default and non-finite floats passed through
under the ``none`` policy are not errors and have no exception type here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mdr.models.bulk import BatchOutcome


class MDRError(Exception):
    """Base error for the document router."""


class ConfigurationError(MDRError, ValueError):
    """Invalid or incomplete output configuration; raised before any record is written."""


class TransportError(MDRError):
    """The bulk call itself failed; nothing about the batch is known to be indexed."""


class PartialIndexFailure(MDRError):
    """The store accepted the bulk call but rejected one or more items."""

    def __init__(self, outcome: BatchOutcome) -> None:
        self.outcome = outcome
        super().__init__(f"failed to index {outcome.failed_count} metric(s)")

    @property
    def failed_count(self) -> int:
        return self.outcome.failed_count
