"""
Transcript module: consolidation of partial/final recognition output.
"""

from transcript_relay.transcript.consolidator import TranscriptConsolidator, label_speaker
from transcript_relay.transcript.topics import DEFAULT_TOPIC_RULES, TopicRule, classify_topic

__all__ = [
    "TranscriptConsolidator",
    "label_speaker",
    "TopicRule",
    "DEFAULT_TOPIC_RULES",
    "classify_topic",
]
