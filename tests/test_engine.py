"""Tests for the answer engine adapter and the Gemini transport."""

from unittest.mock import MagicMock

import pytest

from notebook.constants import REFUSAL_SENTENCE_AR, REFUSAL_SENTENCE_EN
from notebook.context import assemble_context
from notebook.engine import (
    AnswerEngine,
    GeminiEngine,
    TransportFailure,
    build_system_instruction,
    is_locked_refusal,
)
from notebook.sessions import ASSISTANT, USER, Message

from conftest import FakeEngine, make_document


def test_is_locked_refusal_is_verbatim_after_whitespace_normalisation():
    assert is_locked_refusal(REFUSAL_SENTENCE_EN)
    assert is_locked_refusal(f"  {REFUSAL_SENTENCE_EN}\n")
    assert is_locked_refusal(REFUSAL_SENTENCE_AR)
    assert not is_locked_refusal(f"{REFUSAL_SENTENCE_EN} Also, the meeting is at 10am.")
    assert not is_locked_refusal("This information is confidential.")


def test_system_instruction_switches_protocol(registry):
    locked = build_system_instruction(assemble_context(registry.list(), False), authorized=False)
    unlocked = build_system_instruction(assemble_context(registry.list(), True), authorized=True)

    assert REFUSAL_SENTENCE_EN in locked
    assert "250000" not in locked
    assert "verified administrator" in unlocked
    assert "250000" in unlocked


def test_answer_flags_refusal_only_when_locked_documents_exist(registry, fake_engine):
    fake_engine.responder = lambda system, messages: REFUSAL_SENTENCE_EN
    engine = AnswerEngine(fake_engine)

    locked = engine.answer("salary?", assemble_context(registry.list(), False), [], authorized=False)
    public_only = engine.answer(
        "salary?",
        assemble_context([make_document("n", "Notes.txt", "hi")], False),
        [],
        authorized=False,
    )

    assert locked.locked_refusal
    assert not public_only.locked_refusal


def test_history_window_is_bounded_and_query_is_last(registry, fake_engine):
    engine = AnswerEngine(fake_engine, temperature=0.2, history_window=2)
    history = [Message(role=USER if i % 2 == 0 else ASSISTANT, text=f"m{i}") for i in range(5)]

    engine.answer("latest", assemble_context(registry.list(), False), history, authorized=False)

    call = fake_engine.calls[-1]
    assert [m.text for m in call.messages] == ["m3", "m4", "latest"]
    assert call.temperature == 0.2


def test_engine_errors_become_transport_failures(registry):
    failing = FakeEngine()
    failing.error = ConnectionError("offline")
    engine = AnswerEngine(failing)

    with pytest.raises(TransportFailure):
        engine.answer("hello", assemble_context(registry.list(), False), [], authorized=False)


def test_empty_reply_is_a_transport_failure(registry):
    engine = AnswerEngine(FakeEngine(lambda system, messages: "   "))
    with pytest.raises(TransportFailure):
        engine.answer("hello", assemble_context(registry.list(), False), [], authorized=False)


def test_summarize_sends_document_content(fake_engine):
    engine = AnswerEngine(fake_engine)
    summary = engine.summarize(make_document("n", "Notes.txt", "Team meeting at 10am."))

    assert summary == "- Meeting at 10am"
    assert "Team meeting at 10am." in fake_engine.calls[-1].messages[0].text


def test_gemini_engine_maps_roles_and_config():
    client = MagicMock()
    client.models.generate_content.return_value = MagicMock(text="answer")
    engine = GeminiEngine(client=client, model="gemini-test")

    history = [
        Message(role=USER, text="hi"),
        Message(role=ASSISTANT, text="hello"),
    ]
    messages = AnswerEngine(engine).recent_history(history)
    result = engine.generate("system", messages, 0.1)

    assert result == "answer"
    kwargs = client.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert [content.role for content in kwargs["contents"]] == ["user", "model"]
    assert kwargs["config"].system_instruction == "system"
    assert kwargs["config"].temperature == 0.1


def test_gemini_engine_wraps_client_errors():
    client = MagicMock()
    client.models.generate_content.side_effect = RuntimeError("quota exceeded")
    engine = GeminiEngine(client=client, model="gemini-test")

    with pytest.raises(TransportFailure):
        engine.generate("system", [], 0.1)
