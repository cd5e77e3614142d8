"""
Authentication Models

Strongly-typed caller identity produced after bearer-token verification.
"""

from typing import List
from pydantic import BaseModel, Field, ConfigDict


class Principal(BaseModel):
    """
    Authenticated caller of the management API.

    Derived from a verified JWT and injected into protected routes.
    """

    subject: str = Field(
        ...,
        min_length=1,
        description="Token subject (operator or service name).",
    )

    scopes: List[str] = Field(
        default_factory=list,
        description="Scopes granted to the caller, e.g. files:write.",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",             # Prevents claim injection via unexpected fields
    )
