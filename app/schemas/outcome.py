"""
Tagged results threaded through every component computation.

``Ok`` carries a reduced value; ``Unavailable`` carries the reason the
value could not be produced.  Callers branch with ``isinstance`` and
substitute a documented neutral score when they see ``Unavailable``.
"""

from typing import Literal, Union

from pydantic import BaseModel, Field


class Ok(BaseModel):
    """A successfully reduced value."""

    model_config = {"frozen": True}

    status: Literal["ok"] = "ok"
    value: float
    sample_count: int = Field(0, ge=0)
    fallback: bool = Field(
        False,
        description="True when the value came from the whole-day fallback query",
    )


class Unavailable(BaseModel):
    """No value could be produced."""

    model_config = {"frozen": True}

    status: Literal["unavailable"] = "unavailable"
    reason: str


Outcome = Union[Ok, Unavailable]
