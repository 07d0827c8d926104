"""
Relay requests: the payload shapes accepted on the work queue.

Design principles:
- One message carries exactly one request
- Shape is decided by which fields are present, in a fixed priority order
- Serializable to JSON for replies
"""

from abc import abstractmethod
from typing import ClassVar, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class RelayRequest(BaseModel):
    """Base for the four request shapes. Unknown fields are ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    operation: ClassVar[str] = "unknown"

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Operation-specific value used to trace the request in logs."""


class RawTransactionRequest(RelayRequest):
    operation: ClassVar[str] = "sendrawtransaction"

    raw_transaction: str = Field(alias="rawTransaction", description="Transaction blob as hex")
    hash: Optional[str] = Field(default=None, description="Transaction hash, for logging only")

    @property
    def identifier(self) -> str:
        return self.hash or ""


class BlockSubmission(RelayRequest):
    operation: ClassVar[str] = "submitblock"

    block_blob: str = Field(alias="blockBlob", description="Mined block blob as hex")

    @property
    def identifier(self) -> str:
        return self.block_blob


class BlockTemplateRequest(RelayRequest):
    operation: ClassVar[str] = "getblocktemplate"

    wallet_address: str = Field(alias="walletAddress")
    reserve_size: int = Field(alias="reserveSize", ge=0)

    @property
    def identifier(self) -> str:
        return self.wallet_address


class RandomOutputsQuery(BaseModel):
    amounts: list[int] = Field(default_factory=list)
    mixin: int = Field(default=0, ge=0)

    @field_validator("amounts", "mixin", mode="before")
    @classmethod
    def _null_as_default(cls, value, info):
        if value is None:
            return [] if info.field_name == "amounts" else 0
        return value


class RandomOutputsRequest(RelayRequest):
    operation: ClassVar[str] = "getrandom_outs"

    random_outputs: RandomOutputsQuery = Field(alias="randomOutputs")

    @property
    def identifier(self) -> str:
        return orjson.dumps(self.random_outputs.amounts).decode()


Request = Union[RawTransactionRequest, BlockSubmission, BlockTemplateRequest, RandomOutputsRequest]

# Priority order: the first rule whose fields are all present wins
ROUTES: list[tuple[tuple[str, ...], type[RelayRequest]]] = [
    (("rawTransaction",), RawTransactionRequest),
    (("blockBlob",), BlockSubmission),
    (("walletAddress", "reserveSize"), BlockTemplateRequest),
    (("randomOutputs",), RandomOutputsRequest),
]


def classify(payload) -> Optional[Request]:
    """
    Pick the request shape for a decoded payload.

    A field counts as present when its key exists and is not null, so
    `reserveSize: 0` is present. Returns None for anything that matches
    no shape, or matches one but fails validation.
    """
    if not isinstance(payload, dict):
        return None

    for fields, model in ROUTES:
        if all(payload.get(f) is not None for f in fields):
            try:
                return model.model_validate(payload)
            except ValidationError:
                return None

    return None


def is_ok(result: dict) -> bool:
    """A daemon result is successful iff its status normalizes to OK."""
    status = result.get("status") if isinstance(result, dict) else None
    return status is not None and str(status).upper() == "OK"


def encode(data) -> bytes:
    """Serialize a reply body. Uses compact JSON."""
    return orjson.dumps(data, default=str)


def decode(body: bytes):
    """Deserialize a message body, None if it is not JSON."""
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError:
        return None
