"""Abstract interface the resolver and entity sub-clients program against."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TypeVar, overload

from pydantic import BaseModel

JsonDict = dict[str, Any]
ModelT = TypeVar("ModelT", bound=BaseModel)


class LinearClient(ABC):
    """Abstract base class for clients that execute Linear GraphQL operations."""

    @abstractmethod
    async def __aenter__(self) -> "LinearClient":
        """Enter async context manager."""
        ...

    @abstractmethod
    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        """Exit async context manager."""
        ...

    @overload
    async def execute(self, query: str, variables: JsonDict | None = None) -> JsonDict: ...

    @overload
    async def execute(
        self, query: str, variables: JsonDict | None = None, *, result_model: type[ModelT]
    ) -> ModelT: ...

    @abstractmethod
    async def execute(
        self,
        query: str,
        variables: JsonDict | None = None,
        *,
        result_model: type[ModelT] | None = None,
    ) -> JsonDict | ModelT:
        """Execute a GraphQL query or mutation.

        Args:
            query: GraphQL document
            variables: Variables for the document
            result_model: Optional pydantic model to validate ``data`` into

        Returns:
            The ``data`` object of the response, or a ``result_model`` instance

        Raises:
            LinearError: Subclass describing why the request failed
        """
        ...
