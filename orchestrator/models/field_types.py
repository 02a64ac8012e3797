"""
Common type aliases for the orchestrator.

Reusable type aliases with validation constraints, expressed with Field().
"""
from typing import Annotated, TypeAlias

from pydantic import Field


# =============================================================================
# String Length Constraints
# =============================================================================

Str128: TypeAlias = Annotated[str, Field(max_length=128)]
Str256: TypeAlias = Annotated[str, Field(max_length=256)]


# =============================================================================
# Numeric Constraints
# =============================================================================

NonNegativeInt: TypeAlias = Annotated[int, Field(ge=0)]
