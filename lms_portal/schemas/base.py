# lms_portal/schemas/base.py
"""Shared Pydantic base for payloads exchanged with the LMS backend."""
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class PortalModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )

class BackendDocument(PortalModel):
    """A backend document identified by `_id`."""
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices('_id', 'id'))
