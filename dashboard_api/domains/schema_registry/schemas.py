from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from dashboard_api.domains.schema_registry.entities import FieldType


class FieldDefinitionSchema(BaseModel):
    """Field definition as sent by the schema editor"""
    id: Optional[str] = Field(None, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    type: FieldType = FieldType.TEXT
    required: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Field name cannot be empty")
        return v.strip()


class SchemaUpdate(BaseModel):
    fields: List[FieldDefinitionSchema]


class SchemaResponse(BaseModel):
    collection: str
    fields: Optional[List[FieldDefinitionSchema]] = None
