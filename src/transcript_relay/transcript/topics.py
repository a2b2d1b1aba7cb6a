"""
Keyword topic classification for finalized transcript lines.

Rules are checked in order and the first rule with a keyword contained in
the (lower-cased) text wins. Text matching no rule gets no topic.
"""

from pydantic import BaseModel, Field


class TopicRule(BaseModel):
    """A topic category and the keywords that select it."""

    topic: str = Field(..., description="Category assigned on match")
    keywords: tuple[str, ...] = Field(..., description="Lower-case substrings that trigger the rule")

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self.keywords)


DEFAULT_TOPIC_RULES: tuple[TopicRule, ...] = (
    TopicRule(
        topic="Coordination",
        keywords=(
            "meeting",
            "schedule",
            "calendar",
            "agenda",
            "deadline",
            "appointment",
            "zoom",
            "call",
            "sync",
        ),
    ),
    TopicRule(
        topic="Development",
        keywords=(
            "code",
            "bug",
            "deploy",
            "api",
            "database",
            "server",
            "frontend",
            "backend",
            "release",
            "repository",
            "software",
        ),
    ),
    TopicRule(
        topic="Business",
        keywords=(
            "price",
            "pricing",
            "sales",
            "customer",
            "client",
            "contract",
            "revenue",
            "budget",
            "invoice",
            "profit",
            "market",
        ),
    ),
    TopicRule(
        topic="Casual",
        keywords=(
            "hello",
            "good morning",
            "good afternoon",
            "good evening",
            "how are you",
            "thank",
            "goodbye",
            "bye",
            "see you",
        ),
    ),
)


def classify_topic(text: str, rules: tuple[TopicRule, ...] = DEFAULT_TOPIC_RULES) -> str | None:
    for rule in rules:
        if rule.matches(text):
            return rule.topic
    return None
