"""
Base class for records persisted in the ledger store.

Records are immutable snapshots. A change is expressed by creating an
updated copy with :meth:`LedgerRecord.evolve` and handing it back to the
transaction, which assigns the next version on commit.
"""

import re
from datetime import UTC, datetime
from typing import Any, ClassVar, Self
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def _camel_to_snake(name: str) -> str:
    """
    Convert CamelCase to snake_case.

    Examples:
        >>> _camel_to_snake("OrderItem")
        'order_item'
        >>> _camel_to_snake("HTTPResponse")
        'http_response'
    """
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _pluralize(name: str) -> str:
    """
    Simple English pluralization.

    Examples:
        >>> _pluralize("order_item")
        'order_items'
        >>> _pluralize("coupon_usage")
        'coupon_usages'
        >>> _pluralize("address")
        'addresses'
    """
    if name.endswith("y") and len(name) > 1 and name[-2] not in "aeiou":
        return name[:-1] + "ies"
    if name.endswith(("s", "x", "z", "ch", "sh")):
        return name + "es"
    return name + "s"


class LedgerRecord(BaseModel):
    """
    Base class for every entity stored in a LedgerStore.

    Attributes:
        id: Surrogate identifier generated by the application
        version: Optimistic locking version (0 until first commit)
        created_at: When the record was first created
        updated_at: When the record was last committed

    Class attributes:
        __entity__: Entity name; derived from the class name when unset
        __unique__: Field names that must be unique across the entity

    Example:
        >>> class Warehouse(LedgerRecord):
        ...     __unique__ = ("name",)
        ...     name: str
        >>> Warehouse.entity_name()
        'warehouses'
        >>> w = Warehouse(name="Dublin")
        >>> w.evolve(name="Cork").name
        'Cork'
    """

    model_config = ConfigDict(frozen=True)

    __entity__: ClassVar[str | None] = None
    __unique__: ClassVar[tuple[str, ...]] = ()

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique identifier for this record",
    )
    version: int = Field(
        default=0,
        ge=0,
        description="Optimistic locking version (0 = never committed)",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When this record was first created",
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        description="When this record was last committed",
    )

    @classmethod
    def entity_name(cls) -> str:
        """Entity name used as the storage namespace for this record type."""
        if cls.__entity__:
            return cls.__entity__
        return _pluralize(_camel_to_snake(cls.__name__))

    def ledger_key(self) -> str:
        """Key identifying this record within its entity."""
        return str(self.id)

    def partition_key(self) -> str | None:
        """
        Key of the set this record belongs to, if any.

        Partitions group child rows (the items of an order, the usages of a
        coupon) so they can be scanned and counted, and so a transaction can
        detect that the set changed since it was counted.
        """
        return None

    def unique_values(self) -> dict[str, str]:
        """Values of the unique fields, as strings."""
        return {name: str(getattr(self, name)) for name in self.__unique__}

    def evolve(self, **changes: Any) -> Self:
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=changes)
