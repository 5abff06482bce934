"""Base Pydantic model with strict defaults for snaplog-etl configs.

All config schemas inherit from this base so parameter, user, CLI and
internal configs validate the same way.
"""

from pydantic import BaseModel, ConfigDict


class EtlBaseModel(BaseModel):
    """Base model for all configuration schemas.

    Enforces strict validation:
    - No extra fields allowed
    - Validates assignments after initialization
    - Enums stored as their values
    - Strings stripped of surrounding whitespace
    """

    model_config = ConfigDict(
        extra='forbid',           # Reject unknown fields
        validate_assignment=True, # Validate on field mutation
        use_enum_values=True,     # Convert enums to values
        str_strip_whitespace=True,# Strip whitespace from strings
    )
