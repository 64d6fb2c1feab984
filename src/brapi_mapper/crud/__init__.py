"""Create, update, and delete through datatype mappings."""

from brapi_mapper.crud.orchestrator import CrudOrchestrator, CrudResult

__all__ = ["CrudOrchestrator", "CrudResult"]
