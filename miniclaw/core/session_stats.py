"""
Session Stats — cumulative usage counters, derived from the event stream.

Stats are a fold over a session's AgentEvents in emission order; nothing else
writes to them.  A context that wants to display stats subscribes to the
session's channel and folds its own copy.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable

from .stream_events import AgentEvent, Done, UsageUpdate


@dataclass
class SessionStats:
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    request_count: int = 0
    completed_runs: int = 0

    def apply(self, event: AgentEvent) -> None:
        """Fold one event.  Events other than UsageUpdate/Done are ignored."""
        if isinstance(event, UsageUpdate):
            self.total_input_tokens += max(event.input_tokens, 0)
            self.total_output_tokens += max(event.output_tokens, 0)
            self.request_count += 1
        elif isinstance(event, Done):
            self.completed_runs += 1

    @classmethod
    def fold(cls, events: Iterable[AgentEvent]) -> "SessionStats":
        stats = cls()
        for event in events:
            stats.apply(event)
        return stats

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionStats":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
