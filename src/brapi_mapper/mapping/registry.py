"""Read-only lookup of datatype mappings."""

import logging

from brapi_mapper.errors import NotFoundError
from brapi_mapper.mapping.models import DatatypeMapping, MappingId

logger = logging.getLogger(__name__)


class MappingRegistry:
    """In-process table of mappings keyed by identifier.

    Args:
        mappings: Mappings to register.  A later mapping with the same
            identifier replaces the earlier one.

    Example:
        registry = MappingRegistry(load_mappings(path))
        mapping = registry.get_for_datatype("v2", "2.1", "Germplasm")
    """

    def __init__(self, mappings: list[DatatypeMapping] | None = None) -> None:
        self._mappings: dict[str, DatatypeMapping] = {}
        for mapping in mappings or []:
            if mapping.id in self._mappings:
                logger.warning(f"Duplicate mapping '{mapping.id}', keeping the last one")
            self._mappings[mapping.id] = mapping

    def __contains__(self, mapping_id: str) -> bool:
        return mapping_id in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)

    def all(self) -> list[DatatypeMapping]:
        return [self._mappings[key] for key in sorted(self._mappings)]

    def find(self, mapping_id: str) -> DatatypeMapping | None:
        return self._mappings.get(mapping_id)

    def get(self, mapping_id: str) -> DatatypeMapping:
        """Return the mapping for *mapping_id*.

        Raises:
            NotFoundError: If no such mapping is registered.
        """
        mapping = self._mappings.get(mapping_id)
        if mapping is None:
            raise NotFoundError(f"No mapping available for data type '{mapping_id}'.")
        return mapping

    def get_for_datatype(
        self, version: str, release: str, datatype: str, *subfields: str
    ) -> DatatypeMapping:
        """Return the mapping for a datatype of a given version and release."""
        return self.get(MappingId.generate(version, release, datatype, *subfields))
