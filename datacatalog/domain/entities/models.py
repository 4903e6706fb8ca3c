"""
Typed catalog entities, facts and import mapping structures.

Entities are the persisted catalog objects (folders, data sets, variables and
attributes). Facts and individuals are the imported data points; their shape
is fully determined by the type of the owning variable.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EntityType(str, Enum):
    FOLDER = "folder"
    DATA_SET = "dataSet"
    VARIABLE = "variable"
    ATTRIBUTE = "attribute"


class VariableType(str, Enum):
    CATEGORICAL = "categorical"
    NUMERICAL = "numerical"
    TEXT = "text"


class Entity(BaseModel):
    entity_type: ClassVar[EntityType]
    hierarchical: ClassVar[bool] = False

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    name: str
    created: Optional[datetime] = None
    modified: Optional[datetime] = None


class KeyedEntity(Entity):
    """Entity addressed by a short key that defaults to its name."""
    key: Optional[str] = None

    @model_validator(mode="after")
    def _default_key(self):
        if not self.key:
            self.key = self.name
        return self


class Folder(Entity):
    entity_type: ClassVar[EntityType] = EntityType.FOLDER
    hierarchical: ClassVar[bool] = True

    parent: Optional[int] = None


class SchemaEntry(BaseModel):
    """One variable observed in a data set, with the attribute ids seen for it."""
    variable: int
    attributes: Optional[List[int]] = None


class DataSet(Entity):
    entity_type: ClassVar[EntityType] = EntityType.DATA_SET

    folder: Optional[int] = None
    data_schema: Optional[List[SchemaEntry]] = Field(default=None, alias="schema")
    data_modified: Optional[datetime] = None


class VariableFormat(BaseModel):
    type: str
    options: Dict[str, Any] = Field(default_factory=dict)


class Variable(KeyedEntity):
    entity_type: ClassVar[EntityType] = EntityType.VARIABLE

    type: VariableType
    scoped_data_set: Optional[int] = None  # None means the variable is global
    format: Optional[VariableFormat] = None

    @property
    def is_global(self) -> bool:
        return self.scoped_data_set is None


class Attribute(KeyedEntity):
    entity_type: ClassVar[EntityType] = EntityType.ATTRIBUTE
    hierarchical: ClassVar[bool] = True

    variable: int
    parent: Optional[int] = None


ENTITY_MODELS = {
    EntityType.FOLDER: Folder,
    EntityType.DATA_SET: DataSet,
    EntityType.VARIABLE: Variable,
    EntityType.ATTRIBUTE: Attribute,
}


class CategoricalFact(BaseModel):
    model_config = ConfigDict(frozen=True)

    variable: int
    type: Literal[VariableType.CATEGORICAL] = VariableType.CATEGORICAL
    attribute: Optional[int] = None


class NumericalFact(BaseModel):
    model_config = ConfigDict(frozen=True)

    variable: int
    type: Literal[VariableType.NUMERICAL] = VariableType.NUMERICAL
    value: Optional[float] = None


class TextFact(BaseModel):
    model_config = ConfigDict(frozen=True)

    variable: int
    type: Literal[VariableType.TEXT] = VariableType.TEXT
    value: Optional[str] = None


Fact = Annotated[Union[CategoricalFact, NumericalFact, TextFact], Field(discriminator="type")]


class Individual(BaseModel):
    """One imported row: its ordinal within the import and its facts in column order."""
    model_config = ConfigDict(frozen=True)

    id: int
    data_set: int
    facts: List[Fact] = Field(default_factory=list)


@dataclass
class ColumnMapping:
    """Resolved target of one source column.

    ``variable`` is None when the mapped id did not resolve; such columns fail
    per row. ``attributes`` is keyed by attribute key.
    """
    variable: Optional[Variable]
    attributes: Optional[Dict[str, Attribute]] = None


Mapping = Dict[str, ColumnMapping]
