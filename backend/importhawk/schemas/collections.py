"""Pydantic schemas for the destination shop's collections."""

from importhawk.schemas.imports import CamelModel


class CollectionResponse(CamelModel):
    """A collection an import can be added to via ``collectionId``."""

    id: str
    title: str
    handle: str
    products_count: int = 0
