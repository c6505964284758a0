"""Interface for presenting results to the operator.

Defines the contract for displaying values, statistics, errors and
informational messages, allowing different UI implementations
(e.g., rich console, plain logging).
"""

import abc
from typing import Any, Dict, List

from tiercache.domain.models.cache import CacheOperation, CacheStats

class UserInterface(abc.ABC):
    """Output surface used by the command handler; one method per kind of result."""

    @abc.abstractmethod
    def display_output(self, output: Any, **kwargs: Any) -> None:
        """Displays a cached value to the user.

        Args:
            output: The value to display (rendered as JSON when structured).
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Reports a failed command.

        Args:
            error_message: Human-readable description of what went wrong.
            **kwargs: Implementation-specific rendering options.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Reports a non-fatal problem, such as a cache miss."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Reports a successful command that has no value to show."""
        pass

    @abc.abstractmethod
    def display_stats(self, stats: CacheStats) -> None:
        """Displays per-level and overall hit statistics."""
        pass

    @abc.abstractmethod
    def display_operations(self, operations: List[CacheOperation]) -> None:
        """Displays operation log entries, oldest first."""
        pass

    @abc.abstractmethod
    def display_mapping(self, title: str, values: Dict[str, Any]) -> None:
        """Displays a simple two-column key/value table.

        Args:
            title: Table title.
            values: Rows to display, in insertion order.
        """
        pass
