"""
Turn driver: runs one user turn against the model with tool support.

For every turn it:
1. Resolves the conversation's session (creating it on first contact)
2. Submits prior turns + the new message + tool schemas to the model
3. Forwards text as it arrives and dispatches tool calls in arrival order
4. Re-enters the model with tool results until it produces a final answer
5. Appends the completed turn to the session history
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncGenerator, AsyncIterator

import structlog

from ..errors import FinanceAgentError, ModelError, ModelTransportError, ToolLoopExceeded
from ..llm import (
    BaseLLM,
    ErrorEvent,
    FinalEvent,
    LLMMessage,
    TextEvent,
    ToolCall,
    ToolCallEvent,
    ToolResultEvent,
    TurnEvent,
)
from ..sessions import Session, SessionKey, SessionStore, ToolCallRecord, Turn
from ..tools import ToolRegistry

logger = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = """You are a personal finance assistant.

You help the user understand their spending and stick to their budgets.
You have access to these tools:
- **analyze_transactions**: Total income and spending by category for a list of transactions
- **set_budget_goal**: Save a budget for a spending category
- **check_budget**: Compare the last analysis against the budget goals
- **generate_report**: Summarize the analysis, budgets and notes from this conversation

Guidelines:
1. Use tools for any calculation instead of doing arithmetic yourself
2. Results of earlier tool calls are remembered for the whole conversation
3. Be concise and format amounts in dollars
4. If a tool reports an error, explain it or retry with corrected arguments"""


class TurnState(str, Enum):
    """Lifecycle of a single turn."""

    SUBMITTED = "submitted"
    AWAITING_MODEL = "awaiting_model"
    EMITTING_CONTENT = "emitting_content"
    DISPATCHING_TOOL = "dispatching_tool"
    FINAL = "final"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.FINAL, TurnState.ERRORED, TurnState.CANCELLED)


@dataclass
class ConversationContext:
    """Messages submitted to the model for one turn."""

    messages: list[LLMMessage] = field(default_factory=list)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @classmethod
    def from_session(
        cls,
        session: Session,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_turns: int = 50,
    ) -> "ConversationContext":
        """Rebuild the context from a session's most recent turns."""
        context = cls(system_prompt=system_prompt)
        for turn in session.turns[-max_turns:] if max_turns > 0 else []:
            context.add_user_message(turn.user_message)
            if turn.response:
                context.add_assistant_message(turn.response)
        return context

    def add_user_message(self, content: str) -> None:
        """Add a user message."""
        self.messages.append(LLMMessage(role="user", content=content))

    def add_assistant_message(
        self, content: str, tool_calls: list[ToolCall] | None = None
    ) -> None:
        """Add an assistant message."""
        self.messages.append(LLMMessage(
            role="assistant",
            content=content,
            tool_calls=tool_calls,
        ))

    def add_tool_result(self, tool_call_id: str, result: str, tool_name: str = "") -> None:
        """Add a tool result."""
        self.messages.append(LLMMessage(
            role="tool",
            content=result,
            tool_call_id=tool_call_id,
            name=tool_name,
        ))

    @property
    def message_count(self) -> int:
        """Get the number of messages."""
        return len(self.messages)


class TurnExecution:
    """One turn of one session, driven by iterating :meth:`events`."""

    def __init__(
        self,
        driver: "TurnDriver",
        key: SessionKey,
        message: str,
        stop: asyncio.Event | None = None,
    ):
        self.driver = driver
        self.key = key
        self.message = message
        self.stop = stop or asyncio.Event()
        self.state = TurnState.SUBMITTED
        self.dispatch_count = 0
        self.tool_calls: list[ToolCallRecord] = []
        self.error: FinanceAgentError | None = None
        self._parts: list[str] = []
        self._started = False
        self._log = logger.bind(user_id=key.user_id, session_id=key.session_id)

    @property
    def response(self) -> str:
        """All text emitted so far."""
        return "".join(self._parts)

    def _transition(self, state: TurnState) -> None:
        if state is not self.state:
            self._log.debug("Turn state", previous=self.state.value, state=state.value)
            self.state = state

    @asynccontextmanager
    async def _model_stream(
        self, stream: AsyncGenerator[TurnEvent, None]
    ) -> AsyncIterator[AsyncGenerator[TurnEvent, None]]:
        try:
            yield stream
        finally:
            # A failing close must not replace the turn's own outcome
            try:
                await stream.aclose()
            except Exception as e:
                self._log.warning("Model stream close failed", error=str(e), error_type=type(e).__name__)

    async def _next_event(self, stream: AsyncIterator[TurnEvent]) -> TurnEvent | None:
        try:
            return await anext(stream)
        except StopAsyncIteration:
            return None
        except FinanceAgentError:
            raise
        except Exception as e:
            raise ModelTransportError(str(e) or type(e).__name__) from e

    async def events(self) -> AsyncIterator[TurnEvent]:
        """Run the turn, yielding text, tool-call and tool-result events."""
        if self._started:
            raise RuntimeError("A turn can only be run once")
        self._started = True

        driver = self.driver
        try:
            resolution = await driver.store.resolve(self.key)
            context = ConversationContext.from_session(
                resolution.session, driver.system_prompt, driver.max_context_turns
            )
            context.add_user_message(self.message)
            session = driver.store.handle(self.key)
            tools = driver.tools.get_definitions() or None
            self._log.info("Turn started", created=resolution.created, history=resolution.session.turn_count)

            while True:
                if self.stop.is_set():
                    self._cancel("before model call")
                    return

                self._transition(TurnState.AWAITING_MODEL)
                dispatched = False
                finished = False
                pending_text = ""

                model_events = driver.llm.run(context.messages, tools, context.system_prompt)
                async with self._model_stream(model_events) as stream:
                    while not self.stop.is_set():
                        event = await self._next_event(stream)
                        if event is None:
                            break

                        if isinstance(event, TextEvent):
                            self._transition(TurnState.EMITTING_CONTENT)
                            self._parts.append(event.text)
                            pending_text += event.text
                            yield event

                        elif isinstance(event, ToolCallEvent):
                            if self.dispatch_count >= driver.max_tool_dispatches:
                                raise ToolLoopExceeded(
                                    f"Turn exceeded {driver.max_tool_dispatches} tool dispatches"
                                )
                            self._transition(TurnState.DISPATCHING_TOOL)
                            self.dispatch_count += 1
                            dispatched = True
                            yield event

                            result_event = await self._dispatch(event.call, session)
                            context.add_assistant_message(pending_text, [event.call])
                            context.add_tool_result(event.call.id, result_event.output, event.call.name)
                            pending_text = ""
                            yield result_event

                        elif isinstance(event, ErrorEvent):
                            raise ModelError(event.message, code=event.code)

                        elif isinstance(event, FinalEvent):
                            finished = True
                            break

                    if self.stop.is_set():
                        self._cancel("mid-stream")
                        return

                if pending_text:
                    context.add_assistant_message(pending_text)
                if finished or not dispatched:
                    break

            await driver.store.append(
                self.key,
                Turn(user_message=self.message, response=self.response, tool_calls=self.tool_calls),
            )
            self._transition(TurnState.FINAL)
            self._log.info("Turn finished", dispatches=self.dispatch_count, chars=len(self.response))

        except FinanceAgentError as e:
            self.error = e
            self._transition(TurnState.ERRORED)
            self._log.error("Turn failed", code=e.code, error=e.message, dispatches=self.dispatch_count)
            raise
        except (GeneratorExit, asyncio.CancelledError):
            self._cancel("consumer closed")
            raise
        except Exception as e:
            self._transition(TurnState.ERRORED)
            self._log.exception("Turn crashed", error=str(e))
            raise

    def _cancel(self, where: str) -> None:
        if not self.state.is_terminal:
            self._transition(TurnState.CANCELLED)
            self._log.info("Turn cancelled", where=where, chars=len(self.response))

    async def _dispatch(self, call: ToolCall, session: Any) -> ToolResultEvent:
        result = await self.driver.tools.invoke(call.name, call.arguments, session)
        error_code = None if result.success else (result.error_code or "TOOL_ERROR")
        self.tool_calls.append(ToolCallRecord(
            name=call.name,
            arguments=call.arguments,
            output=result.content,
            success=result.success,
            error_code=error_code,
        ))
        return ToolResultEvent(
            call_id=call.id,
            name=call.name,
            output=result.content,
            success=result.success,
            error_code=error_code,
        )


class TurnDriver:
    """Drives turns for any session held by one store.

    The store, registry and model are passed in explicitly; the driver keeps
    no per-turn state of its own.
    """

    def __init__(
        self,
        store: SessionStore,
        tools: ToolRegistry,
        llm: BaseLLM,
        max_tool_dispatches: int = 10,
        system_prompt: str | None = None,
        max_context_turns: int = 50,
    ):
        if max_tool_dispatches < 1:
            raise ValueError("max_tool_dispatches must be at least 1")
        self.store = store
        self.tools = tools
        self.llm = llm
        self.max_tool_dispatches = max_tool_dispatches
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.max_context_turns = max_context_turns

    def start(self, key: SessionKey, message: str, stop: asyncio.Event | None = None) -> TurnExecution:
        """Prepare a turn. Nothing runs until its events are iterated."""
        return TurnExecution(self, key, message, stop=stop)
