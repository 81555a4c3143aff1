"""
Deterministic index naming.

Index names are a pure function of the table name, the ordered column names
and an optional explicit override, so the live index set can always be
recomputed from the declaration.
"""

import hashlib
import logging
from typing import Optional, Sequence

from ..exceptions import ConfigurationError


logger = logging.getLogger(__name__)

DEFAULT_MAX_IDENTIFIER_LENGTH = 63
HASH_LENGTH = 10


def _byte_length(value: str) -> int:
    return len(value.encode("utf-8"))


def _truncate_bytes(value: str, max_bytes: int) -> str:
    """Cut whole characters until the UTF-8 encoding fits ``max_bytes``."""
    encoded = value.encode("utf-8")[:max_bytes]
    return encoded.decode("utf-8", errors="ignore")


class IndexNameResolver:
    """Derives canonical, length-bounded index identifiers."""

    def __init__(self, max_length: int = DEFAULT_MAX_IDENTIFIER_LENGTH):
        if max_length <= HASH_LENGTH + 1:
            raise ValueError(f"max_length must be greater than {HASH_LENGTH + 1}")
        self.max_length = max_length

    @staticmethod
    def canonical_name(table_name: str, column_names: Sequence[str]) -> str:
        return f"index_{table_name}_on_{'_and_'.join(column_names)}"

    def resolve(
        self,
        table_name: str,
        column_names: Sequence[str],
        explicit_name: Optional[str] = None,
    ) -> str:
        if explicit_name:
            if _byte_length(explicit_name) > self.max_length:
                raise ConfigurationError(
                    f"Index name '{explicit_name}' exceeds {self.max_length} bytes",
                    {"table": table_name, "max_length": self.max_length},
                )
            return explicit_name

        name = self.canonical_name(table_name, column_names)
        if _byte_length(name) <= self.max_length:
            return name
        return self.shorten(name)

    def shorten(self, name: str) -> str:
        """Keep a prefix of the canonical name and append a stable digest of all of it."""
        digest = hashlib.md5(name.encode("utf-8")).hexdigest()[:HASH_LENGTH]
        prefix = _truncate_bytes(name, self.max_length - HASH_LENGTH - 1).rstrip("_")
        shortened = f"{prefix}_{digest}"
        logger.debug(f"Index name {name} shortened to {shortened}")
        return shortened
