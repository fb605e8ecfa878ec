"""
Pydantic schema for declarative form definitions.

A ConfigurationSchema is an ordered list of sections, each holding ordered
fields, plus schema-level cross-field validations and conditional-logic
rules. Models are frozen: a loaded schema is immutable for the lifetime of
the form instance that uses it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from form_engine.schemas.expressions import ConditionalExpression
from form_engine.schemas.rules import ConditionalRule, CrossFieldValidation, ValidationRule


class FieldType(str, Enum):
    """Closed set of supported field types."""

    TEXT = "text"
    TEXTAREA = "textarea"
    RICH_TEXT = "rich_text"
    NUMBER = "number"
    INTEGER = "integer"
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    CHECKBOX_GROUP = "checkbox_group"
    TOGGLE = "toggle"
    SLIDER = "slider"
    RATING = "rating"
    FILE = "file"
    COLOR = "color"
    JSON = "json"
    FIELD_ARRAY = "field_array"
    HIDDEN = "hidden"


SINGLE_CHOICE_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO})
MULTI_CHOICE_TYPES = frozenset({FieldType.MULTI_SELECT, FieldType.CHECKBOX_GROUP})


class OptionItem(BaseModel):
    """A selectable option for choice fields."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    value: Any = Field(..., description="Stored value")
    label: str = Field(..., description="Display label")
    description: Optional[str] = None
    disabled: bool = False
    group: Optional[str] = Field(None, description="Option group heading")


class FieldOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    static_options: List[OptionItem] = Field(default_factory=list)
    allow_custom: bool = Field(False, description="Accept values outside static_options")
    depends_on: List[str] = Field(
        default_factory=list,
        description="Field ids whose change reloads this field's option list",
    )

    def values(self) -> List[Any]:
        return [option.value for option in self.static_options]


class FieldConstraints(BaseModel):
    """Type-specific parameters checked after the declared rules."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    min_length: Optional[int] = Field(None, ge=0)
    max_length: Optional[int] = Field(None, ge=0)
    max_selections: Optional[int] = Field(None, ge=1)
    max_rating: Optional[int] = Field(None, ge=1)
    min_items: Optional[int] = Field(None, ge=0)
    max_items: Optional[int] = Field(None, ge=0)
    date_format: Optional[str] = Field(None, description="strptime format; ISO 8601 when unset")
    accepted_types: List[str] = Field(default_factory=list, description="Accepted file extensions or MIME types")


class FormField(BaseModel):
    """A single input field. Ids are unique across the whole schema."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1)
    label: str = ""
    type: FieldType = FieldType.TEXT
    required: bool = False
    default_value: Any = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options: Optional[FieldOptions] = None
    constraints: FieldConstraints = Field(default_factory=FieldConstraints)
    validations: List[ValidationRule] = Field(default_factory=list)
    visibility_conditions: Optional[ConditionalExpression] = None
    dependent_field_ids: List[str] = Field(
        default_factory=list,
        description="Fields whose values this field's evaluation needs",
    )
    disabled: bool = False

    @property
    def display_name(self) -> str:
        return self.label or self.id


class Section(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1)
    title: str = ""
    description: Optional[str] = None
    order: int = 0
    visibility_conditions: Optional[ConditionalExpression] = None
    fields: List[FormField] = Field(default_factory=list)


class SchemaMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    tags: List[str] = Field(default_factory=list)
    target_audience: List[str] = Field(default_factory=list)
    difficulty_level: Optional[str] = None
    estimated_minutes: Optional[int] = Field(None, ge=0)
    is_template: bool = False
    is_active: bool = True
    locale: str = "en"
    custom: Dict[str, Any] = Field(default_factory=dict)


class ConfigurationSchema(BaseModel):
    """
    Immutable description of a form.

    Sections are evaluated in ``order``; ties keep their original list
    position. Fields inside a section keep list order.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    description: Optional[str] = None
    version: str = "1.0.0"
    category: Optional[str] = None
    sections: List[Section] = Field(default_factory=list)
    global_validations: List[CrossFieldValidation] = Field(default_factory=list)
    conditional_logic: List[ConditionalRule] = Field(default_factory=list)
    defaults: Dict[str, Any] = Field(default_factory=dict)
    metadata: SchemaMetadata = Field(default_factory=SchemaMetadata)

    def ordered_sections(self) -> List[Section]:
        # sorted() is stable, so equal orders keep list position
        return sorted(self.sections, key=lambda section: section.order)

    def iter_fields(self) -> Iterator[Tuple[Section, FormField]]:
        """Yield (section, field) pairs in section order then field order."""
        for section in self.ordered_sections():
            for field in section.fields:
                yield section, field

    def field_ids(self) -> List[str]:
        return [field.id for _, field in self.iter_fields()]

    def get_field(self, field_id: str) -> Optional[FormField]:
        for _, field in self.iter_fields():
            if field.id == field_id:
                return field
        return None

    def get_section(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def section_of(self, field_id: str) -> Optional[Section]:
        for section, field in self.iter_fields():
            if field.id == field_id:
                return section
        return None

    def initial_data(self) -> Dict[str, Any]:
        """Field default values, overlaid by the schema-level ``defaults`` map."""
        data: Dict[str, Any] = {}
        for _, field in self.iter_fields():
            if field.default_value is not None:
                data[field.id] = field.default_value
        data.update(self.defaults)
        return data
