from datetime import datetime

from transcript_relay.schemas import AudioSourceSelector, SourceKind
from transcript_relay.transcript import TranscriptConsolidator, classify_topic, label_speaker


def _fixed_clock() -> datetime:
    return datetime(2024, 5, 1, 9, 30, 5)


def _texts(consolidator: TranscriptConsolidator) -> list[tuple[str, bool]]:
    return [(e.text, e.is_final) for e in consolidator.entries]


def test_partials_replace_tail_final_closes_and_next_appends() -> None:
    log = TranscriptConsolidator(clock=_fixed_clock)

    log.ingest("Hel", False)
    assert _texts(log) == [("Hel", False)]

    log.ingest("Hello", False)
    assert _texts(log) == [("Hello", False)]

    final = log.ingest("Hello there", True)
    assert _texts(log) == [("Hello there", True)]
    assert final.topic == "Casual"
    assert final.timestamp_display == "09:30:05"

    log.ingest("Next", False)
    assert _texts(log) == [("Hello there", True), ("Next", False)]


def test_replaced_partial_keeps_slot_id() -> None:
    log = TranscriptConsolidator(clock=_fixed_clock)
    first = log.ingest("we should", False)
    second = log.ingest("we should ship", False)
    third = log.ingest("we should ship the release", True)
    assert first.id == second.id == third.id
    assert len(log) == 1


def test_never_two_consecutive_non_final_entries() -> None:
    log = TranscriptConsolidator(clock=_fixed_clock)
    sequence = [
        ("a", False),
        ("ab", False),
        ("abc", True),
        ("d", False),
        ("de", True),
        ("f", True),
        ("g", False),
        ("gh", False),
    ]
    for text, is_final in sequence:
        log.ingest(text, is_final)
        entries = log.entries
        non_final = [i for i, e in enumerate(entries) if not e.is_final]
        assert len(non_final) <= 1
        if non_final:
            assert non_final[0] == len(entries) - 1

    assert _texts(log) == [("abc", True), ("de", True), ("f", True), ("gh", False)]


def test_topic_only_assigned_to_final_entries() -> None:
    log = TranscriptConsolidator(clock=_fixed_clock)
    partial = log.ingest("let's schedule the meeting", False)
    assert partial.topic is None
    final = log.ingest("let's schedule the meeting", True)
    assert final.topic == "Coordination"


def test_first_matching_rule_wins_and_no_match_leaves_topic_unset() -> None:
    # "deploy" (Development) and "customer" (Business): Development comes first.
    assert classify_topic("We deploy for the customer on Friday") == "Development"
    assert classify_topic("Thanks, see you tomorrow") == "Casual"
    assert classify_topic("Nothing to categorise here") is None


def test_entry_carries_language_and_speaker() -> None:
    log = TranscriptConsolidator(clock=_fixed_clock)
    entry = log.ingest("Bonjour", True, language="fr", speaker="Speaker A")
    assert entry.language == "fr"
    assert entry.speaker == "Speaker A"


def test_clear_empties_log_and_notifies() -> None:
    log = TranscriptConsolidator(clock=_fixed_clock)
    cleared: list[bool] = []
    log.subscribe("cleared", lambda: cleared.append(True))
    log.ingest("one", True)
    log.ingest("two", False)

    log.clear()

    assert log.entries == []
    assert cleared == [True]
    assert log.latest_final() is None


def test_entry_event_fires_for_every_ingest_until_cancelled() -> None:
    log = TranscriptConsolidator(clock=_fixed_clock)
    seen: list[str] = []
    sub = log.subscribe("entry", lambda entry: seen.append(entry.text))
    log.ingest("x", False)
    log.ingest("xy", True)
    sub.cancel()
    log.ingest("z", True)
    assert seen == ["x", "xy"]


def test_label_speaker() -> None:
    system = AudioSourceSelector(kind=SourceKind.SYSTEM)
    mic = AudioSourceSelector.parse("default")
    assert label_speaker("A", system) == "System"
    assert label_speaker("B", mic) == "Speaker B"
    assert label_speaker(None, mic) == "You"
