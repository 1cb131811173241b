from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional


class ColumnNode(BaseModel):
    """A column of a table in the attached catalog."""

    model_config = ConfigDict(frozen=True)

    name : str = Field(..., description="Column name as declared")
    data_type : str = Field(..., description="Declared column type (engine spelling)")
    is_nullable : bool = Field(default=True, description="Whether the column accepts NULL")

class RelationshipNode(BaseModel):
    """A foreign-key edge between two tables."""

    model_config = ConfigDict(frozen=True)

    from_table : str = Field(..., description="Table holding the foreign key")
    from_column : str = Field(..., description="Foreign-key column")
    to_table : str = Field(..., description="Referenced table")
    to_column : str = Field(..., description="Referenced column")

    @property
    def label(self) -> str:
        return f"{self.from_table}.{self.from_column} -> {self.to_table}.{self.to_column}"

class SchemaDescriptor(BaseModel):
    """
    Normalized schema of the attached catalog.

    Built once per run and shared read-only by every stage. Tables are kept in
    lexical order and columns in declaration order, so prompts built from a
    descriptor are reproducible.
    """

    model_config = ConfigDict(frozen=True)

    catalog : str = Field(..., description="Logical name the database is attached under")
    tables : Dict[str, List[ColumnNode]] = Field(default_factory=dict, description="Table name -> ordered columns")
    foreign_keys : List[RelationshipNode] = Field(default_factory=list, description="Foreign-key edges")

    @property
    def table_names(self) -> List[str]:
        return list(self.tables)

    def resolve_table(self, name: str) -> Optional[str]:
        """Return the declared spelling of a table name, matched case-insensitively."""
        lowered = name.lower()
        for table_name in self.tables:
            if table_name.lower() == lowered:
                return table_name
        return None
