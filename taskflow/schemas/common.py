"""Common schemas."""
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    """Pagination block returned alongside list results."""

    page: int
    limit: int
    total: int
    pages: int


class ApiResponse(CamelModel, Generic[DataT]):
    """Response envelope shared by every endpoint."""

    success: bool = True
    data: Optional[DataT] = None
    message: Optional[str] = None
    errors: Optional[List[Dict[str, Any]]] = None
    pagination: Optional[Pagination] = None
