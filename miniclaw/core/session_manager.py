"""
Session Manager — independent conversations running side by side.

Each Session owns its history (inside its Agent), its EventChannel, its
SessionStats and the CancellationToken of the run in flight.  Sessions share
only the read-only provider and tool registry, so several can run at once as
separate asyncio tasks.
"""

from __future__ import annotations
import asyncio
import logging
import time
import uuid
from typing import Optional

from .agent import DEFAULT_CONTEXT_WINDOW, Agent, Approver, RunResult
from .event_channel import EventChannel, EventSubscription
from .models import Message, ToolCall
from .providers.base import BaseLLMProvider
from .session_stats import SessionStats
from .stream_cancellation import CancellationToken
from .structured_logger import bind_context, reset_context
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class SessionBusyError(RuntimeError):
    """A session already has a run in flight."""


def new_session_id() -> str:
    return uuid.uuid4().hex[:8]


class Session:
    """
    One isolated conversation.

    Stats are updated only by a listener on the session's own channel, in
    emission order.
    """

    def __init__(
        self,
        agent: Agent,
        name: str = "",
        session_id: Optional[str] = None,
        created_at: Optional[float] = None,
        stats: Optional[SessionStats] = None,
    ):
        self.id = session_id or new_session_id()
        self.name = name or f"session-{self.id}"
        self.created_at = created_at or time.time()
        self.agent = agent
        self.events: EventChannel = agent.events
        self._stats = stats or SessionStats()
        self.events.add_listener(self._stats.apply)
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def messages(self) -> list[Message]:
        return self.agent.messages

    @property
    def is_running(self) -> bool:
        return self._token is not None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def subscribe(self) -> EventSubscription:
        return self.events.subscribe()

    def _claim(self) -> CancellationToken:
        if self.is_running:
            raise SessionBusyError(f"Session {self.id} is already running")
        self._token = CancellationToken()
        return self._token

    def _release(self, token: CancellationToken) -> None:
        if self._token is token:
            self._token = None

    async def _run(self, text: str, token: CancellationToken) -> RunResult:
        ctx_token = bind_context(session_id=self.id)
        try:
            logger.debug(f"Run started ({len(text)} chars of input)")
            result = await self.agent.run(text, cancellation_token=token)
            logger.debug(f"Run ended: {result.state.value} after {result.iterations} round(s)")
            return result
        finally:
            self._release(token)
            reset_context(ctx_token)

    async def submit(self, text: str) -> RunResult:
        """Run the agent on one user message and wait for the outcome."""
        return await self._run(text, self._claim())

    def start(self, text: str) -> asyncio.Task:
        """Schedule a run as its own task and return it."""
        token = self._claim()
        task = asyncio.create_task(self._run(text, token), name=f"session-{self.id}")
        # A task cancelled before it first runs never reaches _run's finally
        task.add_done_callback(lambda _: self._release(token))
        self._task = task
        return task

    def cancel(self, reason: str = "Cancelled by user") -> bool:
        """Request cooperative cancellation of the run in flight."""
        if self._token is None:
            return False
        self._token.cancel(reason)
        return True

    def clear(self) -> None:
        """Drop the conversation history, keeping the system prompt."""
        if self.is_running:
            raise SessionBusyError(f"Cannot clear session {self.id} while it is running")
        self.agent.clear()

    def close(self) -> None:
        self.cancel("Session closed")
        self.events.close()

    def info(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "message_count": len(self.agent.messages),
            "context_tokens": self.agent.estimate_context_tokens(),
            "context_window": self.agent.context_window,
            "running": self.is_running,
            "stats": self._stats.to_dict(),
        }

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, name={self.name!r}, running={self.is_running})"


class SessionManager:
    """
    Creates and tracks sessions.

    The provider and tool registry are shared by every session and must not
    be mutated after startup.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        registry: ToolRegistry,
        system_prompt: str = "",
        max_iterations: int = 20,
        stream: bool = True,
        preview_chars: int = 200,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        approver: Optional[Approver] = None,
    ):
        self.provider = provider
        self.registry = registry
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.stream = stream
        self.preview_chars = preview_chars
        self.context_window = context_window
        # Asked about dangerous tool calls; None denies them
        self.approver = approver
        self._sessions: dict[str, Session] = {}

    @classmethod
    def from_config(cls, config, provider: BaseLLMProvider, registry: ToolRegistry,
                    system_prompt: str = "") -> "SessionManager":
        return cls(
            provider=provider,
            registry=registry,
            system_prompt=system_prompt,
            max_iterations=int(config.get("agent.max_iterations", 20)),
            stream=bool(config.get("llm.stream", True)),
            preview_chars=int(config.get("agent.preview_chars", 200)),
            context_window=int(config.get("llm.context_window", DEFAULT_CONTEXT_WINDOW)),
        )

    def _new_agent(self, session_id: str) -> Agent:
        return Agent(
            provider=self.provider,
            registry=self.registry,
            events=EventChannel(name=session_id),
            system_prompt=self.system_prompt,
            max_iterations=self.max_iterations,
            stream=self.stream,
            preview_chars=self.preview_chars,
            approve=self._approve,
            context_window=self.context_window,
        )

    async def _approve(self, call: ToolCall, description: str) -> bool:
        # self.approver is read at call time
        if self.approver is None:
            return False
        return await self.approver(call, description)

    def create(
        self,
        name: str = "",
        session_id: Optional[str] = None,
        messages: Optional[list[Message]] = None,
        stats: Optional[SessionStats] = None,
        created_at: Optional[float] = None,
    ) -> Session:
        """
        Create a session.  ``messages`` replaces the fresh history (used when
        restoring a saved conversation).
        """
        session_id = session_id or new_session_id()
        if session_id in self._sessions:
            raise ValueError(f"Session already exists: {session_id}")

        agent = self._new_agent(session_id)
        if messages:
            agent.set_messages(messages)

        session = Session(agent, name=name, session_id=session_id,
                          created_at=created_at, stats=stats)
        self._sessions[session.id] = session
        logger.info(f"Created session: {session.id} ({session.name})")
        return session

    def get(self, session_id: str) -> Optional[Session]:
        """Look up a session by id or unique id prefix."""
        if session_id in self._sessions:
            return self._sessions[session_id]
        matches = [s for sid, s in self._sessions.items() if sid.startswith(session_id)]
        return matches[0] if len(matches) == 1 else None

    def list(self) -> list[Session]:
        return sorted(self._sessions.values(), key=lambda s: s.created_at)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def remove(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info(f"Removed session: {session_id}")
        return True

    def cancel(self, session_id: str, reason: str = "Cancelled by user") -> bool:
        session = self.get(session_id)
        return session.cancel(reason) if session else False

    def cancel_all(self, reason: str = "Cancelled by user") -> int:
        """Cancel every running session; returns how many were running."""
        return sum(1 for s in self._sessions.values() if s.cancel(reason))

    async def shutdown(self) -> None:
        """Cancel every run, wait for the tasks to settle and close channels."""
        self.cancel_all("Shutting down")
        tasks = [s.task for s in self._sessions.values() if s.task and not s.task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for session in self._sessions.values():
            session.events.close()
