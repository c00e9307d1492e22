from agentmem.runtime.memory.history import HistoryWindow, estimate_tokens, format_transcript
from agentmem.runtime.memory.models import Message, ToolCall


def test_history_window_enforces_max_messages():
    window = HistoryWindow(max_messages=2)
    window.add(Message(role="user", content="hi"))
    window.add(Message(role="assistant", content="hello"))
    window.add(Message(role="user", content="again"))

    messages = window.messages
    assert len(messages) == 2
    assert messages[0].role == "assistant"
    assert messages[1].content == "again"


def test_history_window_token_budget():
    first = Message(message_id="1", role="user", content="a" * 320)
    second = Message(message_id="2", role="assistant", content="b" * 160)
    third = Message(message_id="3", role="user", content="c" * 120)
    assert [estimate_tokens(m) for m in (first, second, third)] == [80, 40, 30]

    window = HistoryWindow(max_messages=5, token_budget=100)
    window.extend([first, second, third])

    assert [m.message_id for m in window.messages] == ["2", "3"]


def test_format_transcript_marks_tool_calls():
    text = format_transcript(
        [
            Message(role="user", content="weather?"),
            Message(role="tool", content={"text": "sunny"}, tool_call=ToolCall(name="forecast")),
        ]
    )
    assert text.splitlines() == ["[USER] weather?", "[TOOL] sunny (tool=forecast)"]
