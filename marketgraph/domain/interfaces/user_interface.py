"""Interface for presenting results to the user.

Defines the contract for displaying resource trees, pagination details,
errors and informational messages, allowing different UI implementations
(e.g., rich console, plain text).
"""

import abc
from typing import Any, Optional

from ..models.envelope import PaginationMeta

class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_json(self, data: Any, **kwargs: Any) -> None:
        """Displays JSON-compatible data (e.g., a denormalized resource tree).

        Args:
            data: Plain data to render.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_pagination(self, meta: Optional[PaginationMeta]) -> None:
        """Displays page metadata of a query result."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user.

        Args:
            info_message: The informational message string.
            **kwargs: Additional arguments for formatting.
        """
        pass
