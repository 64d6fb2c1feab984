"""Projection of backend records into BrAPI objects."""

from brapi_mapper.projection.projector import ObjectProjector, coerce_cardinality

__all__ = ["ObjectProjector", "coerce_cardinality"]
