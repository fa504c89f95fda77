"""
Shared type definitions for topicLoom.

These dataclasses describe consumer registrations (interests), the per-topic
registry entries that hold them, and the variable definitions derived from
them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from topicLoom.common.constants import VARIABLE_LABEL_TEMPLATE


class InterestKind(str, Enum):
    VARIABLE = "variable"
    FEEDBACK = "feedback"


@dataclass(frozen=True)
class Interest:
    """One consumer's registration against a topic.

    Interests are never mutated; an options change is an unregister followed
    by a register with a fresh Interest.
    """

    id: str
    kind: InterestKind
    path: str = ""
    variable_name: Optional[str] = None

    @classmethod
    def variable(cls, interest_id: str, variable_name: str, path: str = "") -> "Interest":
        return cls(
            id=interest_id,
            kind=InterestKind.VARIABLE,
            path=path or "",
            variable_name=variable_name,
        )

    @classmethod
    def feedback(cls, interest_id: str, path: str = "") -> "Interest":
        return cls(id=interest_id, kind=InterestKind.FEEDBACK, path=path or "")

    @property
    def is_variable(self) -> bool:
        return self.kind == InterestKind.VARIABLE


@dataclass
class TopicEntry:
    """All live interests for a single topic. Never empty while it exists."""

    topic: str
    interests: Dict[str, Interest] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.interests)


@dataclass(frozen=True)
class VariableDefinition:
    name: str
    label: str

    @classmethod
    def for_topic(cls, name: str, topic: str) -> "VariableDefinition":
        return cls(name=name, label=VARIABLE_LABEL_TEMPLATE.format(topic=topic))

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "label": self.label}


class ConnectionStatus(str, Enum):
    """Connection state shown to the user.

    CONNECTING -> OK, CONNECTING -> ERROR (retried after a fixed backoff),
    OK -> DISCONNECTED on an offline event, DISCONNECTED -> CONNECTING on retry.
    """

    CONNECTING = "connecting"
    OK = "ok"
    ERROR = "error"
    DISCONNECTED = "disconnected"
    STOPPED = "stopped"
