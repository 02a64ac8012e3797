"""
Base classes for orchestrator models.
"""
from pydantic import BaseModel, ConfigDict


class ModelBase(BaseModel):
    """
    Base class for all models in the orchestrator.

    Features:
    - use_attribute_docstrings: Uses field docstrings for schema descriptions
    - validate_by_name: Allows validation by field name
    - extra='forbid': Rejects unknown fields
    """
    model_config = ConfigDict(
        use_attribute_docstrings=True,
        validate_by_name=True,
        extra='forbid',
    )


class WireModelBase(BaseModel):
    """
    Base class for payloads received from workers.

    Unknown fields are ignored so that a newer worker image can add
    fields without breaking an older orchestrator.
    """
    model_config = ConfigDict(
        use_attribute_docstrings=True,
        validate_by_name=True,
        extra='ignore',
    )
