"""Process-wide registry of discovered schemas."""

import logging
import threading

from tabular_plugin.models import Schema

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """Canonical schemas keyed by signature.

    Entries are only ever added or extended with new source locations; their
    name and properties are fixed by the first file seen with that signature.
    """

    def __init__(self) -> None:
        self._schemas: dict[tuple[str, ...], Schema] = {}
        self._lock = threading.Lock()

    def merge(self, schema: Schema) -> Schema:
        """Merge a per-file schema into the registry.

        Args:
            schema: Schema inferred from a single file.

        Returns:
            A copy of the canonical entry for the schema's signature, with
            ``settings`` holding only the locations of the given schema.
        """
        with self._lock:
            known = self._schemas.get(schema.signature)
            if known is None:
                logger.info(f"New schema found: {schema.name}")
                known = schema.model_copy(deep=True)
                self._schemas[schema.signature] = known
            else:
                logger.info(f"Known schema found: {known.name}")
                for location in schema.settings:
                    if location not in known.settings:
                        known.settings.append(location)

            return known.model_copy(update={"settings": list(schema.settings)}, deep=True)

    def lookup(self, signature: tuple[str, ...]) -> Schema | None:
        """Get a copy of the entry for a signature, if any."""
        with self._lock:
            known = self._schemas.get(signature)
            return known.model_copy(deep=True) if known is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._schemas)
