"""
Transcript consolidation.

Owns the ordered transcript log and merges incremental recognition output
into it: the latest partial replaces the open slot at the tail, a final
closes it, and anything arriving after a final opens a new slot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from transcript_relay.events import EventEmitter, Subscription
from transcript_relay.schemas import AudioSourceSelector, SourceKind, TranscriptEntry
from transcript_relay.transcript.topics import DEFAULT_TOPIC_RULES, TopicRule, classify_topic

logger = logging.getLogger(__name__)


def label_speaker(speaker_tag: str | None, selector: AudioSourceSelector | None = None) -> str:
    """
    Display label for a transcript line.

    System audio is always labelled "System"; otherwise a diarization tag
    becomes "Speaker <tag>" and untagged speech is the local user ("You").
    """
    if selector is not None and selector.kind == SourceKind.SYSTEM:
        return "System"
    if speaker_tag:
        return f"Speaker {speaker_tag}"
    return "You"


class TranscriptConsolidator:
    """
    Ordered transcript log with a single open (non-final) slot at the tail.

    Invariant: at most one non-final entry exists, and it is always the
    last entry of the log.
    """

    def __init__(
        self,
        *,
        topic_rules: tuple[TopicRule, ...] = DEFAULT_TOPIC_RULES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._entries: list[TranscriptEntry] = []
        self._topic_rules = topic_rules
        self._clock = clock or datetime.now
        self._events = EventEmitter(("entry", "cleared"))

    @property
    def entries(self) -> list[TranscriptEntry]:
        """Get a snapshot of the transcript log."""
        return self._entries.copy()

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, event: str, handler: Callable[..., None]) -> Subscription:
        """Observe ``entry`` (written entry) or ``cleared`` events."""
        return self._events.subscribe(event, handler)

    def ingest(
        self,
        text: str,
        is_final: bool,
        language: str = "auto",
        speaker: str = "",
    ) -> TranscriptEntry:
        """
        Merge one recognition result into the log.

        Args:
            text: Recognized text.
            is_final: Whether the provider asserts the text is settled.
            language: Language the provider was asked for.
            speaker: Display label of the speaker.

        Returns:
            The entry now occupying the written slot.
        """
        tail = self._entries[-1] if self._entries else None
        replace = tail is not None and not tail.is_final

        entry = TranscriptEntry(
            text=text,
            is_final=is_final,
            timestamp_display=self._clock().strftime("%H:%M:%S"),
            language=language,
            speaker=speaker,
            topic=classify_topic(text, self._topic_rules) if is_final else None,
        )
        if replace:
            # Keep the slot identity so observers can track the open line.
            entry.id = tail.id
            self._entries[-1] = entry
        else:
            self._entries.append(entry)

        if is_final:
            logger.debug(f"Final transcript [{entry.speaker}] topic={entry.topic}: {entry.text}")
        self._events.emit("entry", entry)
        return entry

    def latest_final(self) -> TranscriptEntry | None:
        for entry in reversed(self._entries):
            if entry.is_final:
                return entry
        return None

    def clear(self) -> None:
        """Empty the log. Has no effect on any running provider session."""
        self._entries = []
        self._events.emit("cleared")
