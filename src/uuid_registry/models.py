"""
Registry Models - Contexts, key descriptors and registry records

A ``RegistryContext`` says what a uuid is for: which table (if any) it
belongs to, how that table's rows are keyed, and which identifier domain it
lives in. It is the Python counterpart of the association array the
registry was historically configured with.
"""

import json
import re
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from uuid_registry.kernel.errors import InvalidConfiguration

_SQL_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_sql_name(name: str, what: str) -> str:
    """Reject anything that is not a plain SQL identifier (names are interpolated)"""
    if not isinstance(name, str) or not _SQL_NAME.match(name):
        raise InvalidConfiguration(f"{what} {name!r} is not a plain SQL identifier")
    return name


class SimpleKey(BaseModel):
    """Rows are identified by a single (usually auto-increment) column"""

    kind: Literal["simple"] = "simple"
    column: str = "id"

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check(self) -> "SimpleKey":
        check_sql_name(self.column, "Key column")
        return self

    @property
    def columns(self) -> list[str]:
        return [self.column]


class CompositeKey(BaseModel):
    """
    Rows are identified by a fixed set of non-null columns

    Used for "vertical" tables such as many-to-many associations that have
    no surrogate key. Column order is preserved and is part of what gets
    recorded in the registry.
    """

    kind: Literal["composite"] = "composite"
    columns: list[str]

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check(self) -> "CompositeKey":
        if not self.columns:
            raise InvalidConfiguration("A composite key needs at least one column")
        if len(set(self.columns)) != len(self.columns):
            raise InvalidConfiguration(f"Composite key repeats a column: {self.columns}")
        for column in self.columns:
            check_sql_name(column, "Vertical key column")
        return self


KeyDescriptor = Annotated[Union[SimpleKey, CompositeKey], Field(discriminator="kind")]


class RegistryContext(BaseModel):
    """
    What a uuid is issued for

    Fields:
    - table_name: tracked table the uuid is checked against ("" for none)
    - key: how rows of that table are identified (SimpleKey("id") by default)
    - disable_tracker: skip the registry check and the registry insert
    - couchdb: free-text label of a non-relational store, recorded as-is
    - document_drive: uuid labels a document saved to drive
    - mapped: uuid participates in the resource-to-uuid mapping
    """

    table_name: str = ""
    key: KeyDescriptor | None = None
    disable_tracker: bool = False
    couchdb: str = ""
    document_drive: bool = False
    mapped: bool = False

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _default_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("table_name") and data.get("key") is None:
            data = {**data, "key": SimpleKey()}
        return data

    @model_validator(mode="after")
    def _check(self) -> "RegistryContext":
        if self.table_name:
            check_sql_name(self.table_name, "Table name")
        elif self.key is not None:
            raise InvalidConfiguration("A key descriptor requires a table_name")
        return self

    @classmethod
    def for_table(
        cls,
        table_name: str,
        table_id: str = "id",
        table_vertical: list[str] | None = None,
        **options: bool | str,
    ) -> "RegistryContext":
        """
        Build a context for a tracked table

        Example:
            >>> RegistryContext.for_table("drugs", table_id="drug_id")
            >>> RegistryContext.for_table("facility_user_ids", table_vertical=["uid", "facility_id"])
        """
        key: SimpleKey | CompositeKey
        if table_vertical:
            key = CompositeKey(columns=list(table_vertical))
        else:
            key = SimpleKey(column=table_id)
        return cls(table_name=table_name, key=key, **options)

    @classmethod
    def for_document_drive(cls) -> "RegistryContext":
        """Context for drive document labels, checked against the document table"""
        return cls(document_drive=True)

    @property
    def table_id(self) -> str:
        """Registry ``table_id`` value: the simple key column, "id" for vertical tables"""
        if not self.table_name:
            return ""
        if isinstance(self.key, SimpleKey):
            return self.key.column
        return "id"

    @property
    def table_vertical(self) -> list[str] | None:
        if isinstance(self.key, CompositeKey):
            return list(self.key.columns)
        return None

    @property
    def is_vertical(self) -> bool:
        return isinstance(self.key, CompositeKey)

    def vertical_json(self) -> str | None:
        vertical = self.table_vertical
        return json.dumps(vertical) if vertical else None


class RegistryRecord(BaseModel):
    """One row of the registry table"""

    uuid: bytes
    table_name: str = ""
    table_id: str = ""
    table_vertical: list[str] | None = None
    couchdb: str = ""
    document_drive: bool = False
    mapped: bool = False
    created: datetime

    model_config = {"frozen": True}


class BackfillTarget(BaseModel):
    """A table the backfill orchestrator keeps populated"""

    table_name: str
    table_id: str = "id"
    table_vertical: list[str] | None = None

    model_config = {"frozen": True}

    def to_context(self) -> RegistryContext:
        return RegistryContext.for_table(
            self.table_name,
            table_id=self.table_id,
            table_vertical=self.table_vertical,
        )
