"""Tests for the per-conversation session controller."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from astute.config.schema import Config
from astute.conversation.models import Conversation, MessageRole
from astute.conversation.store import ConversationStore
from astute.errors import PermissionDeniedError, SessionError
from astute.memory.context import ContextInjector
from astute.memory.coordinator import MemoryCoordinator
from astute.memory.generator import MemoryGenerator
from astute.runtime import open_conversation
from astute.session.base import VoiceSession
from astute.session.controller import ConversationController


class FakeSession(VoiceSession):
    def __init__(self, *, granted: bool = True, start_error: Exception | None = None, log=None):
        self.granted = granted
        self.start_error = start_error
        self.log: list = log if log is not None else []
        self.instructions: str | None = None
        self.sent: list[str] = []
        self.connected = False
        self.user_speaking = False
        self.responding = False

    async def request_permission(self) -> bool:
        self.log.append("permission")
        return self.granted

    def update_instructions(self, instructions: str) -> None:
        self.log.append("instructions")
        self.instructions = instructions

    async def start(self) -> None:
        self.log.append("start")
        if self.start_error is not None:
            raise self.start_error
        self.connected = True

    def stop(self) -> None:
        self.log.append("stop")
        self.connected = False

    def send_text(self, text: str) -> None:
        self.log.append("send_text")
        self.sent.append(text)

    @property
    def is_connected(self) -> bool:
        return self.connected

    @property
    def is_user_speaking(self) -> bool:
        return self.user_speaking

    @property
    def is_responding(self) -> bool:
        return self.responding


def _make(tmp_path: Path, session: FakeSession | None = None, conversation: Conversation | None = None,
          memory=None, coordinator: MemoryCoordinator | None = None,
          memory_wait_timeout: float = 1.0) -> ConversationController:
    store = ConversationStore(tmp_path)
    conversation = conversation or Conversation()
    store.insert(conversation)
    if memory is None:
        memory = MagicMock()
        memory.generate = AsyncMock()
    return ConversationController(
        conversation,
        store,
        session or FakeSession(),
        injector=ContextInjector(),
        baseline_instructions="Be helpful.",
        memory=memory,
        coordinator=coordinator or MemoryCoordinator(),
        memory_wait_timeout=memory_wait_timeout,
    )


@pytest.mark.asyncio
async def test_instructions_are_applied_before_start(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)

    await controller.start()

    assert session.log == ["permission", "instructions", "start"]
    assert session.instructions == "Be helpful."
    assert controller.is_recording is True
    assert controller.status == "listening"


@pytest.mark.asyncio
async def test_instructions_include_history_but_not_current_as_past(tmp_path: Path) -> None:
    session = FakeSession()
    current = Conversation(title="Current", summary="Current summary.")
    current.add_message(MessageRole.USER, "What about Porto?")
    controller = _make(tmp_path, session, conversation=current)
    other = Conversation(title="Lisbon", summary="Planned a Lisbon stay.")
    controller.store.insert(other)

    await controller.start()

    assert "USER: What about Porto?" in session.instructions
    assert "Planned a Lisbon stay." in session.instructions
    assert "Current summary." not in session.instructions


@pytest.mark.asyncio
async def test_permission_denied_raises_and_does_not_start(tmp_path: Path) -> None:
    session = FakeSession(granted=False)
    controller = _make(tmp_path, session)

    with pytest.raises(PermissionDeniedError):
        await controller.start()

    assert session.log == ["permission"]
    assert controller.error_message == "Microphone access was denied."
    assert controller.is_recording is False


@pytest.mark.asyncio
async def test_start_failure_raises_session_error(tmp_path: Path) -> None:
    session = FakeSession(start_error=ConnectionError("handshake rejected"))
    controller = _make(tmp_path, session)

    with pytest.raises(SessionError):
        await controller.start()

    assert controller.error_message == "handshake rejected"
    assert controller.is_recording is False


@pytest.mark.asyncio
async def test_start_waits_for_inflight_memory(tmp_path: Path) -> None:
    log: list[str] = []
    session = FakeSession(log=log)
    coordinator = MemoryCoordinator()
    controller = _make(tmp_path, session, coordinator=coordinator)

    async def _slow_memory() -> None:
        await asyncio.sleep(0.02)
        controller.conversation.summary = "Finished summary."
        log.append("memory-done")

    coordinator.start_background(controller.conversation.id, _slow_memory)

    await controller.start()

    assert log.index("memory-done") < log.index("instructions")


@pytest.mark.asyncio
async def test_send_text_while_disconnected_starts_session(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)

    await controller.send_text("  hello  ")

    assert session.sent == ["hello"]
    assert session.log == ["send_text", "permission", "instructions", "start"]
    assert controller.is_recording is True


@pytest.mark.asyncio
async def test_send_text_while_connected_only_sends(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)
    await controller.start()
    session.log.clear()

    await controller.send_text("hello again")

    assert session.log == ["send_text"]


@pytest.mark.asyncio
async def test_send_blank_text_is_ignored(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)

    await controller.send_text("   ")

    assert session.log == []


@pytest.mark.asyncio
async def test_toggle_recording(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)

    await controller.toggle_recording()
    assert controller.is_recording is True

    await controller.toggle_recording()
    assert controller.is_recording is False
    assert session.log[-1] == "stop"


@pytest.mark.asyncio
async def test_close_while_memory_runs_queues_follow_up(tmp_path: Path) -> None:
    release = asyncio.Event()
    memory = MagicMock()
    calls = []

    async def _generate(conversation):
        calls.append(len(conversation.messages))
        if len(calls) == 1:
            await release.wait()

    memory.generate = AsyncMock(side_effect=_generate)
    controller = _make(tmp_path, memory=memory)
    controller.reconciler.on_user_final("hello")

    task = controller.close()
    again = controller.close()

    assert again is task
    assert controller.reconciler.pending_user is None

    release.set()
    await task
    assert memory.generate.await_count == 2


@pytest.mark.asyncio
async def test_second_session_end_fills_summary_left_by_first(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path)
    coordinator = MemoryCoordinator()
    conversation = Conversation()
    store.insert(conversation)
    title_release = asyncio.Event()

    summarizer = MagicMock()
    summarizer.summarize = AsyncMock(return_value="S")
    titles = MagicMock()

    async def _slow_title(messages):
        await title_release.wait()
        return "T"

    titles.generate_title = AsyncMock(side_effect=_slow_title)
    generator = MemoryGenerator(store, summarizer, titles)

    def _controller(session: FakeSession) -> ConversationController:
        return ConversationController(
            conversation,
            store,
            session,
            injector=ContextInjector(),
            baseline_instructions="Be helpful.",
            memory=generator,
            coordinator=coordinator,
            memory_wait_timeout=0.01,
        )

    # Session 1 ends with a single message; its title request is still open.
    first = _controller(FakeSession())
    first.reconciler.on_user_final("hello")
    first_task = first.close()
    await asyncio.sleep(0)

    # Session 2 starts after the bounded wait gives up, adds messages, and ends.
    second = _controller(FakeSession())
    await second.start()
    second.reconciler.on_assistant_final("Hi!")
    second.reconciler.on_user_final("Plan a trip")
    second_task = second.close()

    assert second_task is first_task
    title_release.set()
    await second_task

    assert conversation.title == "T"
    assert conversation.summary == "S"
    summarizer.summarize.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_sends_start_session_once(tmp_path: Path) -> None:
    permission_release = asyncio.Event()

    class _SlowPermissionSession(FakeSession):
        async def request_permission(self) -> bool:
            self.log.append("permission")
            await permission_release.wait()
            return True

    session = _SlowPermissionSession()
    controller = _make(tmp_path, session)

    first = asyncio.create_task(controller.send_text("one"))
    await asyncio.sleep(0)
    await controller.send_text("two")
    permission_release.set()
    await first

    assert session.sent == ["one", "two"]
    assert session.log.count("permission") == 1
    assert session.log.count("start") == 1
    assert controller.is_recording is True


def test_status_reflects_session_state(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)
    assert controller.status == "ready"

    session.user_speaking = True
    assert controller.status == "hearing"

    session.responding = True
    assert controller.status == "responding"


def test_session_delegate_is_reconciler(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)

    assert session.delegate is controller.reconciler
    session.delegate.on_user_final("spoken words")
    assert controller.conversation.messages[0].content == "spoken words"


def test_session_error_sets_error_message(tmp_path: Path) -> None:
    session = FakeSession()
    controller = _make(tmp_path, session)

    session.delegate.on_error(RuntimeError("socket closed"))

    assert controller.error_message == "socket closed"


def test_open_conversation_wires_config(tmp_path: Path) -> None:
    config = Config(workspace=str(tmp_path))
    config.context.baseline_instructions = "Custom baseline."
    config.memory.provisional_title_max_chars = 10
    store = ConversationStore(tmp_path)
    session = FakeSession()
    conversation = Conversation()

    controller = open_conversation(config, store, session, conversation, MemoryCoordinator(), provider=MagicMock())

    assert store.get(conversation.id) is conversation
    assert controller.baseline_instructions == "Custom baseline."
    controller.reconciler.on_user_final("a long first utterance")
    assert conversation.title == "a long fir"
