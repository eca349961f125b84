from types import SimpleNamespace

import pytest

from reality_check.config import DEFAULT_PLACEHOLDERS, BackendSettings
from reality_check.errors import BackendError
from reality_check.llm_backends import (
    ClaudeBackend,
    JsonBackend,
    OpenAIBackend,
    SyntheticBackend,
    generate_or_fallback,
    parse_json_object,
    select_backend,
)


def settings(name, key):
    return BackendSettings(name=name, api_key=key, model="m")


def test_primary_wins_when_configured():
    b = select_backend(settings("openai", "sk-live"), settings("claude", "ck-live"), DEFAULT_PLACEHOLDERS)
    assert isinstance(b, OpenAIBackend)
    assert b.name == "openai"


def test_secondary_when_primary_is_placeholder():
    b = select_backend(
        settings("openai", "your_openai_api_key"),
        settings("claude", "ck-live"),
        DEFAULT_PLACEHOLDERS,
    )
    assert isinstance(b, ClaudeBackend)


def test_synthetic_when_nothing_configured():
    b = select_backend(settings("openai", "demo-key"), settings("claude", " "), DEFAULT_PLACEHOLDERS)
    assert isinstance(b, SyntheticBackend)
    assert b.available is False


def test_parse_json_object_fenced():
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_object('  {"b": [1, 2]} ') == {"b": [1, 2]}


@pytest.mark.parametrize("content", ["", "not json", "[1, 2]"])
def test_parse_json_object_rejects(content):
    with pytest.raises(BackendError):
        parse_json_object(content)


async def test_generate_or_fallback_skips_unconfigured_backend():
    called = []

    def build(payload):
        called.append(payload)
        return "built"

    out = await generate_or_fallback(
        SyntheticBackend(), system="s", user="u", build=build, fallback=lambda: "fallback", label="t"
    )
    assert out == "fallback"
    assert called == []


async def test_generate_or_fallback_uses_build(fake_backend):
    backend = fake_backend(payload={"x": 2})
    out = await generate_or_fallback(
        backend,
        system="sys",
        user="usr",
        build=lambda p: p["x"] * 10,
        fallback=lambda: -1,
        label="t",
        temperature=0.1,
        max_tokens=50,
    )
    assert out == 20
    assert backend.calls == [{"system": "sys", "user": "usr", "temperature": 0.1, "max_tokens": 50}]


async def test_generate_or_fallback_on_bad_shape(fake_backend):
    out = await generate_or_fallback(
        fake_backend(payload={}), system="s", user="u", build=lambda p: p["missing"], fallback=lambda: -1, label="t"
    )
    assert out == -1


class FakeCreate:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.kwargs = None

    async def __call__(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.reply


def openai_client(create):
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def openai_reply(*contents):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=c)) for c in contents])


def claude_client(create):
    return SimpleNamespace(messages=SimpleNamespace(create=create))


def test_json_backend_is_abstract():
    with pytest.raises(TypeError):
        JsonBackend()


async def test_openai_backend_parses_fenced_reply():
    create = FakeCreate(reply=openai_reply('```json\n{"status": "true"}\n```'))
    backend = OpenAIBackend(settings("openai", "sk-live"), client=openai_client(create))

    out = await backend.complete_json(system="sys", user="usr", temperature=0.2, max_tokens=80)

    assert out == {"status": "true"}
    assert create.kwargs["model"] == "m"
    assert create.kwargs["max_tokens"] == 80
    assert create.kwargs["response_format"] == {"type": "json_object"}
    assert create.kwargs["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "usr"},
    ]


async def test_openai_backend_empty_choices():
    backend = OpenAIBackend(settings("openai", "sk-live"), client=openai_client(FakeCreate(reply=openai_reply())))
    with pytest.raises(BackendError, match="No response from OpenAI"):
        await backend.complete_json(system="s", user="u")


async def test_openai_backend_wraps_sdk_errors():
    create = FakeCreate(error=RuntimeError("rate limited"))
    backend = OpenAIBackend(settings("openai", "sk-live"), client=openai_client(create))
    with pytest.raises(BackendError, match="OpenAI request failed: RuntimeError: rate limited"):
        await backend.complete_json(system="s", user="u")


async def test_claude_backend_joins_content_blocks():
    blocks = [SimpleNamespace(text='{"a":'), SimpleNamespace(type="tool_use"), SimpleNamespace(text="1}")]
    reply = SimpleNamespace(content=blocks)
    create = FakeCreate(reply=reply)
    backend = ClaudeBackend(settings("claude", "ck-live"), client=claude_client(create))

    out = await backend.complete_json(system="sys", user="usr")

    assert out == {"a": 1}
    assert create.kwargs["system"].startswith("sys\n")
    assert create.kwargs["messages"] == [{"role": "user", "content": "usr"}]


async def test_claude_backend_empty_and_failed_replies():
    empty_reply = FakeCreate(reply=SimpleNamespace(content=[]))
    empty = ClaudeBackend(settings("claude", "ck-live"), client=claude_client(empty_reply))
    with pytest.raises(BackendError, match="No response from Claude"):
        await empty.complete_json(system="s", user="u")

    failing = FakeCreate(error=ConnectionError("reset"))
    broken = ClaudeBackend(settings("claude", "ck-live"), client=claude_client(failing))
    with pytest.raises(BackendError, match="Claude request failed"):
        await broken.complete_json(system="s", user="u")
