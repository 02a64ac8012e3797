"""
Base model for all Worker models.
"""
from pydantic import BaseModel, ConfigDict


class ModelBase(BaseModel):
    model_config = ConfigDict(
        use_attribute_docstrings=True,
        validate_by_name=True,
        extra='forbid',
    )


class LenientModelBase(BaseModel):
    """For payloads produced by an LLM or an upstream API: unknown keys are dropped."""
    model_config = ConfigDict(
        use_attribute_docstrings=True,
        validate_by_name=True,
        extra='ignore',
    )
