"""
Synthesis Metadata Serialization.

Token timings are stored next to the audio as a JSON list:

    [
        {"orth": "Hello", "endtime": 0.41},
        {"orth": "", "endtime": 0.52},
        {"orth": "world", "endtime": 0.98}
    ]

Reading goes through Pydantic so a truncated or foreign blob is reported
as invalid instead of surfacing as a KeyError deep in a caller.
"""
from __future__ import annotations

from typing import List, Sequence

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from speechcache.synthesis.contract import Token


class TokenRecord(BaseModel):
    """One token as persisted in the metadata blob."""
    orth: str = Field(default="", description="Orthographic token text")
    endtime: float = Field(..., ge=0.0, description="End time in seconds")


_TOKEN_LIST = TypeAdapter(List[TokenRecord])


class MetadataDecodeError(ValueError):
    """Raised when a metadata blob is not a valid token list."""


def encode_tokens(tokens: Sequence[Token]) -> bytes:
    """Serialize tokens to the metadata blob format."""
    records = [TokenRecord(orth=t.orthography, endtime=t.end_time) for t in tokens]
    return _TOKEN_LIST.dump_json(records)


def decode_tokens(data: bytes) -> List[Token]:
    """
    Parse a metadata blob.

    Raises:
        MetadataDecodeError: If the blob is not a valid token list.
    """
    try:
        records = _TOKEN_LIST.validate_json(data)
    except ValidationError as e:
        raise MetadataDecodeError(f"invalid synthesis metadata: {e.error_count()} error(s)") from e
    return [Token(orthography=r.orth, end_time=r.endtime) for r in records]
