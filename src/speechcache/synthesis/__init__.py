"""
Synthesis contract and token metadata.

    - contract.py: Synthesizer protocol, Token, SynthesisResult
    - metadata.py: JSON encoding of token timings
"""
from .contract import SynthesisResult, Synthesizer, Token, TokenTiming, token_timings
from .metadata import MetadataDecodeError, decode_tokens, encode_tokens

__all__ = [
    "Synthesizer",
    "SynthesisResult",
    "Token",
    "TokenTiming",
    "token_timings",
    "encode_tokens",
    "decode_tokens",
    "MetadataDecodeError",
]
