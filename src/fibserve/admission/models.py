"""
Request/response contracts for the Fibonacci endpoint.

FibonacciRequest and FibonacciResult are transient, one per request.
ServiceResponse is what the service boundary hands to the HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass

import orjson
from pydantic import BaseModel, ConfigDict, Field

JSON_CONTENT_TYPE = "application/json"


class FibonacciRequest(BaseModel):
    """
    Parsed request input.

    Only type coercion happens here; range checks against max_input are done
    by the service so the bound stays configurable.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    n: int = Field(..., description="Index into the Fibonacci sequence")


class FibonacciResult(BaseModel):
    """Computed value for one request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    n: int = Field(..., ge=1, description="Requested index")
    value: int = Field(..., ge=0, description="F(n)")

    def to_body(self) -> bytes:
        """
        Serialize the value as a bare JSON integer.

        Raises:
            orjson.JSONEncodeError: If value does not fit in 64 bits.
        """
        return orjson.dumps(self.value)


@dataclass(frozen=True)
class ServiceResponse:
    """Status, body and content type produced at the service boundary."""

    status: int
    body: bytes
    content_type: str = JSON_CONTENT_TYPE

    @classmethod
    def error(cls, status: int, message: str) -> ServiceResponse:
        return cls(status=status, body=orjson.dumps({"error": message}))
