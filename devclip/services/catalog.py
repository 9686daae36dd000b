"""
Operation Catalog - Static mapping from operation name to cost and handler.

Every operation is charged in whole credits from a single schedule.
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from devclip.exceptions import ValidationError
from devclip.models.api import AIOperation, FormatOperation, HandlerCategory
from devclip.models.domain import OperationDefinition

# Universal code formatter, exposed on POST /v1/format/code
CODE_FORMAT_OPERATION = "code"

DEFAULT_OPERATIONS: tuple[OperationDefinition, ...] = (
    OperationDefinition(FormatOperation.JSON.value, 1, HandlerCategory.LOCAL),
    OperationDefinition(FormatOperation.YAML.value, 1, HandlerCategory.LOCAL),
    OperationDefinition(FormatOperation.SQL.value, 1, HandlerCategory.LOCAL),
    OperationDefinition(FormatOperation.ANSI_STRIP.value, 1, HandlerCategory.LOCAL),
    OperationDefinition(FormatOperation.LOG_TO_MARKDOWN.value, 1, HandlerCategory.LOCAL),
    OperationDefinition(CODE_FORMAT_OPERATION, 1, HandlerCategory.LOCAL),
    OperationDefinition(AIOperation.EXPLAIN.value, 1, HandlerCategory.AI),
    OperationDefinition(AIOperation.SUMMARIZE.value, 1, HandlerCategory.AI),
    OperationDefinition(AIOperation.REFACTOR.value, 2, HandlerCategory.AI),
)


class OperationCatalog:
    """Immutable operation table. Lookup is pure."""

    def __init__(self, operations: Iterable[OperationDefinition] = DEFAULT_OPERATIONS) -> None:
        table: dict[str, OperationDefinition] = {}
        for definition in operations:
            if definition.name in table:
                raise ValueError(f"Duplicate operation: {definition.name}")
            table[definition.name] = definition
        self._operations: Mapping[str, OperationDefinition] = MappingProxyType(table)

    def lookup(self, name: str) -> OperationDefinition:
        """
        Get the definition for an operation.

        Raises:
            ValidationError: unknown operation name
        """
        try:
            return self._operations[name]
        except KeyError:
            raise ValidationError(f"Unknown operation: {name}") from None

    def names(self) -> list[str]:
        return list(self._operations)


default_catalog = OperationCatalog()
