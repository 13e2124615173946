from dashboard_api.domains.schema_registry.entities import (
    FieldDefinition, FieldType, field_id_from_name, validate_document
)
from dashboard_api.domains.schema_registry.schemas import (
    FieldDefinitionSchema, SchemaResponse, SchemaUpdate
)
from dashboard_api.domains.schema_registry.services import SchemaRegistry, ensure_valid

__all__ = [
    "FieldDefinition", "FieldType", "field_id_from_name", "validate_document",
    "FieldDefinitionSchema", "SchemaResponse", "SchemaUpdate",
    "SchemaRegistry", "ensure_valid",
]
