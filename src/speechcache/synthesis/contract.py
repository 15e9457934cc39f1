"""
Speech Synthesis Call Contract.

speechcache does not talk to a synthesis backend itself. Callers hand the
service any object subclassing ``Synthesizer``: an HTTP client for a
speech server, a local engine, or a test double.

    synthesize(language, voice, text) -> SynthesisResult(audio, tokens)

Each token carries the orthographic string the synthesizer read and the
time (seconds into the audio) at which it ends. A token starts where the
previous one ended; the first starts at 0.0.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence


@dataclass(frozen=True)
class Token:
    """
    A word (or pause) in the synthesized audio.

    Attributes:
        orthography: Text the synthesizer produced this token from.
            Empty for silence.
        end_time: Seconds from the start of the audio at which it ends.
    """
    orthography: str
    end_time: float


@dataclass(frozen=True)
class TokenTiming:
    """A token with both ends resolved."""
    orthography: str
    start_time: float
    end_time: float


@dataclass
class SynthesisResult:
    """Audio plus token timings returned by a synthesizer."""
    audio: bytes
    tokens: List[Token] = field(default_factory=list)


class Synthesizer:
    """
    Base class for the external speech synthesis capability.

    Subclasses implement synthesize(). Implementations block until audio
    is ready and raise on failure; the service wraps any exception in
    ``SynthesisError`` and does not retry.

    Example:
        class SpeechServerSynthesizer(Synthesizer):
            def synthesize(self, language, voice, text):
                data = post_to_server(language, voice, text)
                return SynthesisResult(
                    audio=data["audio"],
                    tokens=[Token(t["orth"], t["endtime"]) for t in data["tokens"]],
                )
    """

    def synthesize(self, language: str, voice: str, text: str) -> SynthesisResult:
        """
        Synthesize text with the given language and voice.

        Raises:
            NotImplementedError: If not overridden.
        """
        raise NotImplementedError


def token_timings(tokens: Sequence[Token]) -> List[TokenTiming]:
    """
    Resolve start times from the end times of the preceding tokens.

    Example:
        >>> token_timings([Token("Hello", 0.4), Token("world", 0.9)])
        [TokenTiming(orthography='Hello', start_time=0.0, end_time=0.4),
         TokenTiming(orthography='world', start_time=0.4, end_time=0.9)]
    """
    out: List[TokenTiming] = []
    previous_end = 0.0
    for token in tokens:
        out.append(TokenTiming(token.orthography, previous_end, token.end_time))
        previous_end = token.end_time
    return out
