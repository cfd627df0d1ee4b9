"""
Versioned record shapes used by schema migrations.

Each migration step reads records in the shape of version N-1 and writes
them in the shape of version N. Only the fields a step touches are
declared; every other key rides along untouched as a pydantic extra.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr
from pydantic.alias_generators import to_camel

from finsync.models.entities import CategoryType, TransactionType


class LegacyTransactionType(str, Enum):
    """Transaction types before schema version 2."""
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"
    UNEXPECTED = "unexpected"


class LegacyCategoryType(str, Enum):
    """Category types before schema version 2."""
    MIXED = "mixed"
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"
    UNEXPECTED = "unexpected"


class VersionedRecord(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_raw(self) -> dict[str, Any]:
        """Dump declared fields by alias plus all passthrough keys."""
        return self.model_dump(mode="json", by_alias=True)


class TransactionV1(VersionedRecord):
    """Transaction as written up to schema version 1."""

    id: StrictStr
    type: LegacyTransactionType
    is_unexpected: Optional[StrictBool] = None

    def upgrade(self) -> "TransactionV2":
        """
        Drop the "unexpected" type in favour of the isUnexpected flag.

        Records that already carry a flag keep it; all others get False.
        """
        if self.type is LegacyTransactionType.UNEXPECTED:
            new_type = TransactionType.EXPENSE
            flag = True
        else:
            new_type = TransactionType(self.type.value)
            flag = bool(self.is_unexpected)

        fields = dict(self.model_extra or {})
        fields.update({"id": self.id, "type": new_type, "isUnexpected": flag})
        return TransactionV2.model_validate(fields)


class TransactionV2(VersionedRecord):
    """Transaction as written from schema version 2."""

    id: StrictStr
    type: TransactionType
    is_unexpected: StrictBool


class CategoryV1(VersionedRecord):
    """Category as written up to schema version 1."""

    id: StrictStr
    type: LegacyCategoryType

    def upgrade(self) -> "CategoryV2":
        if self.type is LegacyCategoryType.UNEXPECTED:
            new_type = CategoryType.EXPENSE
        else:
            new_type = CategoryType(self.type.value)

        fields = dict(self.model_extra or {})
        fields.update({"id": self.id, "type": new_type})
        return CategoryV2.model_validate(fields)


class CategoryV2(VersionedRecord):
    """Category as written from schema version 2."""

    id: StrictStr
    type: CategoryType
