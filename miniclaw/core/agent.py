"""
Agent Loop — The core orchestrator.
Receives user messages, streams the LLM response, executes tool calls, loops until done.
"""

from __future__ import annotations
import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from .errors import AgentError, IterationLimitExceeded, ProviderError
from .event_channel import EventChannel
from .models import AgentResponse, ChatRequest, Message, ToolCall
from .providers.base import BaseLLMProvider
from .risk import assess_risk, describe_tool_call
from .stream_assembler import assemble_stream
from .stream_cancellation import CancellationToken, StreamCancelledError
from .stream_chunks import StreamChunk, TextDelta, response_to_chunks
from .stream_events import (
    Cancelled, Done, ErrorEvent, StreamDelta, ToolConfirm, ToolEnd, ToolStart, UsageUpdate,
    preview,
)
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

# (call, description) -> approved?
Approver = Callable[[ToolCall, str], Awaitable[bool]]

DEFAULT_CONTEXT_WINDOW = 128_000


def estimate_tokens(text: str) -> int:
    """Rough count: about three characters per token, at least one."""
    return max(len(text) // 3, 1)


class AgentState(Enum):
    AWAITING_RESPONSE = "awaiting_response"
    DISPATCHING = "dispatching"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentState.FINALIZED, AgentState.CANCELLED, AgentState.FAILED)


@dataclass
class RunResult:
    """Outcome of one ``Agent.run`` call."""
    state: AgentState
    final_text: str = ""
    error: Optional[AgentError] = None
    iterations: int = 0
    messages: list[Message] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state == AgentState.FINALIZED


class Agent:
    """
    Main agent loop.

    Flow:
      user message → add to history → stream LLM response → emit deltas
      → if tool_calls: execute sequentially → commit call + results → loop
      → if no tool_calls: commit answer, emit Done

    Every observable step is emitted on ``events``, and every run ends with
    exactly one Done, Cancelled or Error event.  Only provider failures and
    the iteration cap end a run early; tool failures are fed back to the
    model.  Dangerous tool calls (see ``core.risk``) go through ``approve``
    first; without an approver they are denied.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        registry: ToolRegistry,
        events: Optional[EventChannel] = None,
        system_prompt: str = "",
        max_iterations: int = 20,
        stream: bool = True,
        preview_chars: int = 200,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        approve: Optional[Approver] = None,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
    ):
        self.provider = provider
        self.registry = registry
        self.events = events or EventChannel()
        self.max_iterations = max_iterations
        self.stream = stream
        self.preview_chars = preview_chars
        self.model = model or provider.model
        self.max_tokens = max_tokens or provider.max_tokens
        self.approve = approve
        self.context_window = context_window

        self.state = AgentState.FINALIZED
        self._system_prompt = system_prompt
        self._messages: list[Message] = []
        if system_prompt:
            self._messages.append(Message.system(system_prompt))

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def clear(self) -> None:
        """Drop the conversation, keeping the system message."""
        self._messages = [m for m in self._messages[:1] if m.role == "system"]

    def set_messages(self, messages: list[Message]) -> None:
        """Replace the history wholesale (used when restoring a saved session)."""
        self._messages = list(messages)

    def estimate_context_tokens(self) -> int:
        """Approximate size of the history as sent to the provider."""
        total = 0
        for msg in self._messages:
            total += estimate_tokens(msg.content) + 4
            total += sum(estimate_tokens(json.dumps(tc.arguments)) + 10 for tc in msg.tool_calls)
        return total

    # ── Run loop ─────────────────────────────────────────────────

    async def run(
        self,
        user_input: Optional[str] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> RunResult:
        """
        Drive rounds until a final answer, cancellation, failure, or the
        iteration cap.

        ``user_input`` is appended first when given; with ``None`` the loop
        continues from the current history.
        """
        token = cancellation_token or CancellationToken()
        if user_input is not None:
            self._messages.append(Message.user(user_input))

        iteration = 0
        try:
            while True:
                self.state = AgentState.AWAITING_RESPONSE
                token.check()

                logger.debug(f"Agent round {iteration + 1} ({len(self._messages)} messages)")
                try:
                    response = await self._request_response()
                except AgentError as e:
                    logger.error(f"LLM error ({e.kind}): {e.message}")
                    return self._failed(e, iteration)
                except Exception as e:
                    logger.exception("Provider raised an unexpected exception")
                    error = ProviderError(f"Unexpected provider failure: {type(e).__name__}: {e}")
                    return self._failed(error, iteration)

                usage = response.usage
                self._emit(UsageUpdate(
                    input_tokens=usage.input_tokens if usage else 0,
                    output_tokens=usage.output_tokens if usage else 0,
                ))

                if not response.has_tool_calls:
                    self._messages.append(Message.assistant(response.text))
                    self.state = AgentState.FINALIZED
                    self._emit(Done(final_text=response.text))
                    return RunResult(
                        state=AgentState.FINALIZED,
                        final_text=response.text,
                        iterations=iteration + 1,
                        messages=self.messages,
                    )

                self.state = AgentState.DISPATCHING
                try:
                    await self._dispatch(response, token)
                finally:
                    iteration += 1

                if iteration >= self.max_iterations:
                    error = IterationLimitExceeded(self.max_iterations)
                    logger.warning(error.message)
                    return self._failed(error, iteration)

        except StreamCancelledError:
            return self._cancelled(token, iteration)

        except asyncio.CancelledError:
            logger.info("Agent task cancelled")
            self.state = AgentState.CANCELLED
            self._emit(Cancelled(reason="Task cancelled"))
            raise

    async def _request_response(self) -> AgentResponse:
        request = ChatRequest(
            messages=self.messages,
            tools=self.registry.definitions(),
            model=self.model,
            max_tokens=self.max_tokens,
            stream=self.stream,
        )
        if self.stream:
            chunks = self.provider.stream_message(request)
        else:
            chunks = self._whole_response_chunks(request)
        return await assemble_stream(chunks, on_chunk=self._forward_chunk)

    async def _whole_response_chunks(self, request: ChatRequest):
        response = await self.provider.send_message(request)
        for chunk in response_to_chunks(response):
            yield chunk

    def _forward_chunk(self, chunk: StreamChunk) -> None:
        if isinstance(chunk, TextDelta) and chunk.text:
            self._emit(StreamDelta(text=chunk.text))

    async def _dispatch(self, response: AgentResponse, token: CancellationToken) -> None:
        """
        Run the response's tool calls in model order.

        Commits the assistant message listing the handled calls, each followed
        by its result, even when cancellation (StreamCancelledError) stops the
        dispatch part way.
        """
        handled: list[ToolCall] = []
        results: list[Message] = []

        try:
            for call in response.tool_calls:
                token.check()

                risk = assess_risk(call.name, call.arguments)
                if risk.needs_confirmation and not await self._confirm(call, risk.value, token):
                    denial = f"Tool call '{call.name}' was denied by the user."
                    logger.info(denial)
                    self._emit(ToolEnd(id=call.id, name=call.name, result_preview=denial, success=False))
                    handled.append(call)
                    results.append(Message.tool_result(call.id, denial))
                    continue

                self._emit(ToolStart(
                    id=call.id,
                    name=call.name,
                    args_preview=preview(json.dumps(call.arguments), self.preview_chars),
                ))
                result = await self.registry.execute(call)
                self._emit(ToolEnd(
                    id=call.id,
                    name=call.name,
                    result_preview=preview(result.content, self.preview_chars),
                    success=result.success,
                    duration_ms=result.metadata.get("duration_ms", 0.0),
                ))

                handled.append(call)
                results.append(Message.tool_result(call.id, result.content))

        except StreamCancelledError:
            skipped = len(response.tool_calls) - len(handled)
            logger.info(f"Cancelled during tool dispatch; skipped {skipped} call(s)")
            raise

        finally:
            if handled:
                self._messages.append(Message.assistant(response.text, handled))
                self._messages.extend(results)
            elif response.text:
                self._messages.append(Message.assistant(response.text))

    async def _confirm(self, call: ToolCall, risk: str, token: CancellationToken) -> bool:
        """
        Ask the approver about ``call``.  Cancellation while waiting raises
        StreamCancelledError; a failing approver counts as a denial.
        """
        description = describe_tool_call(call.name, call.arguments)
        self._emit(ToolConfirm(id=call.id, name=call.name, description=description, risk=risk))
        if self.approve is None:
            return False

        answer = asyncio.ensure_future(self.approve(call, description))
        stop = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({answer, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (answer, stop):
                if not pending.done():
                    pending.cancel()

        token.check()
        try:
            return bool(answer.result())
        except Exception:
            logger.exception(f"Approval of '{call.name}' failed; treating as denied")
            return False

    def _emit(self, event) -> None:
        if self.events.closed:
            logger.debug(f"Channel closed, dropping {type(event).__name__}")
            return
        self.events.emit(event)

    def _cancelled(self, token: CancellationToken, iteration: int) -> RunResult:
        reason = token.cancel_reason or "Cancelled by user"
        logger.info(f"Agent run cancelled: {reason}")
        self.state = AgentState.CANCELLED
        self._emit(Cancelled(reason=reason))
        return RunResult(
            state=AgentState.CANCELLED,
            iterations=iteration,
            messages=self.messages,
        )

    def _failed(self, error: AgentError, iteration: int) -> RunResult:
        self.state = AgentState.FAILED
        self._emit(ErrorEvent(message=error.message or str(error), kind=error.kind))
        return RunResult(
            state=AgentState.FAILED,
            error=error,
            iterations=iteration,
            messages=self.messages,
        )
