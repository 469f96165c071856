from pydantic import BaseModel, Field


ANONYMOUS_IDENTITY = "guest"


class Identity(BaseModel):
    """Display identity of the caller, as asserted by the access proxy."""

    name: str = Field(default=ANONYMOUS_IDENTITY)
    email: str | None = None
    authenticated: bool = False
