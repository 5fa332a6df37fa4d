"""Tests for the Groq-backed assistant, with the Groq client mocked."""

import json
from unittest.mock import MagicMock, patch

import pytest

from Connexa.ai_agent.Chat_Agent import WhatsAppAIAgent
from Connexa.ai_agent.history_manager import ChatHistoryManager
from Connexa.whatsapp_session.errors import AIResponseError, AIServiceNotConfiguredError

PHONE = "254700000001"
CHAT = "1@s.whatsapp.net"


def completion(content, usage=None, model="llama-3.3-70b-versatile"):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = usage
    response.model = model
    return response


@pytest.fixture
def groq_client():
    with patch("Connexa.ai_agent.Chat_Agent.Groq") as groq_cls:
        yield groq_cls.return_value


@pytest.fixture
def history():
    return ChatHistoryManager(None)


@pytest.fixture
def agent(groq_client, history):
    return WhatsAppAIAgent("gsk_test", history)


# ── Configuration ───────────────────────────────────────────────────


def test_unconfigured_agent_raises(history):
    agent = WhatsAppAIAgent(None, history)

    assert agent.configured is False
    with pytest.raises(AIServiceNotConfiguredError):
        agent.translate("hola", "English")


# ── Conversation ────────────────────────────────────────────────────


def test_generate_response_uses_and_extends_history(agent, groq_client, history):
    history.add_exchange(PHONE, CHAT, "earlier question", "earlier answer")
    usage = MagicMock()
    usage.model_dump.return_value = {"total_tokens": 12}
    groq_client.chat.completions.create.return_value = completion("Sure!", usage=usage)

    result = agent.generate_response(PHONE, CHAT, "Can you help?")

    assert result == {"reply": "Sure!", "usage": {"total_tokens": 12}, "model": "llama-3.3-70b-versatile"}
    messages = groq_client.chat.completions.create.call_args.kwargs["messages"]
    assert messages[0]["role"] == "system"
    assert [m["content"] for m in messages[1:]] == ["earlier question", "earlier answer", "Can you help?"]
    assert [h["content"] for h in history.get_history(PHONE, CHAT)][-2:] == ["Can you help?", "Sure!"]


def test_generate_response_without_history(agent, groq_client, history):
    history.add_message(PHONE, CHAT, "user", "old")
    groq_client.chat.completions.create.return_value = completion("ok")

    agent.generate_response(PHONE, CHAT, "new", include_history=False, max_tokens=50)

    kwargs = groq_client.chat.completions.create.call_args.kwargs
    assert len(kwargs["messages"]) == 2
    assert kwargs["max_tokens"] == 50


def test_auto_reply_disabled(agent, groq_client):
    assert agent.auto_reply(PHONE, CHAT, "hi", {"autoReplyEnabled": False}) is None
    groq_client.chat.completions.create.assert_not_called()


def test_auto_reply(agent, groq_client):
    groq_client.chat.completions.create.return_value = completion("Hey there!")

    result = agent.auto_reply(PHONE, CHAT, "hi", {"personality": "formal", "language": "French"})

    assert result == {"reply": "Hey there!", "confidence": 0.9, "shouldSend": True}
    system = groq_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert "Be formal." in system
    assert "Respond in French." in system


def test_compose_does_not_touch_history(agent, groq_client, history):
    groq_client.chat.completions.create.return_value = completion("Draft")

    assert agent.compose(PHONE, CHAT, "invite Ann to dinner", tone="warm") == "Draft"
    assert history.get_history(PHONE, CHAT) == []


def test_summarize_without_history(agent, groq_client):
    assert agent.summarize_conversation(PHONE, CHAT) == "No conversation history available."
    groq_client.chat.completions.create.assert_not_called()


# ── JSON analysis ───────────────────────────────────────────────────


def test_sentiment_uses_json_mode(agent, groq_client):
    payload = {"sentiment": "positive", "score": 0.9, "emotions": ["joy"]}
    groq_client.chat.completions.create.return_value = completion(json.dumps(payload))

    assert agent.analyze_sentiment("great news") == payload
    kwargs = groq_client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["model"] == "llama-3.1-8b-instant"


def test_invalid_json_raises(agent, groq_client):
    groq_client.chat.completions.create.return_value = completion("not json")

    with pytest.raises(AIResponseError):
        agent.moderate("text")


def test_smart_reply_suggestions(agent, groq_client):
    groq_client.chat.completions.create.return_value = completion(json.dumps({"suggestions": ["Yes", "No", "Maybe"]}))

    assert agent.generate_smart_reply("Lunch?") == ["Yes", "No", "Maybe"]


def test_batch_analyze_reports_failures_per_message(agent, groq_client):
    groq_client.chat.completions.create.side_effect = [
        completion(json.dumps({"sentiment": "neutral"})),
        completion("broken"),
    ]

    results = agent.batch_analyze([{"id": "A", "text": "ok"}, {"id": "B", "text": "??"}])

    assert results[0] == {"messageId": "A", "sentiment": {"sentiment": "neutral"}, "success": True}
    assert results[1]["messageId"] == "B"
    assert results[1]["success"] is False


# ── Media ───────────────────────────────────────────────────────────


def test_analyze_image_sends_data_url(agent, groq_client):
    groq_client.chat.completions.create.return_value = completion("A cat")

    assert agent.analyze_image("aGVsbG8=") == "A cat"
    kwargs = groq_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == agent.vision_model
    image = kwargs["messages"][0]["content"][1]
    assert image["image_url"]["url"] == "data:image/jpeg;base64,aGVsbG8="


def test_transcribe_audio(agent, groq_client, tmp_path):
    audio = tmp_path / "note.ogg"
    audio.write_bytes(b"OggS")
    groq_client.audio.transcriptions.create.return_value = MagicMock(text="hello", duration=1.5)

    assert agent.transcribe_audio(str(audio)) == {"text": "hello", "duration": 1.5}
    kwargs = groq_client.audio.transcriptions.create.call_args.kwargs
    assert kwargs["file"] == ("note.ogg", b"OggS")
    assert kwargs["model"] == "whisper-large-v3"
