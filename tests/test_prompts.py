"""
Tests for prompt assembly.
"""

from codepilot.core.prompts import (
    build_chat_messages,
    build_chat_system_prompt,
    build_inline_prompt,
    format_context_chunks,
)
from codepilot.vector import QueryResult


def test_inline_prompt_ends_with_code_verbatim():
    code = "function add(a, b) {\n  return a"
    prompt = build_inline_prompt(code, "javascript")

    assert prompt.endswith("Code Before Cursor:\n" + code)
    assert "You are a professional javascript developer." in prompt
    assert "Mode: Inline Completion." in prompt


def test_inline_prompt_without_context_has_no_context_section():
    assert "Relevant Project Context" not in build_inline_prompt("x", "python", [])


def test_inline_prompt_includes_retrieved_chunks():
    chunks = [
        QueryResult(text="def helper():\n    pass", source_name="utils.py", score=0.9),
        {"text": "CONSTANT = 1", "source_name": "settings.py"},
    ]
    prompt = build_inline_prompt("helper(", "python", chunks)

    assert "Relevant Project Context:" in prompt
    assert "<file: utils.py>\ndef helper():\n    pass\n<end file>" in prompt
    assert "<file: settings.py>" in prompt
    assert prompt.index("Relevant Project Context") < prompt.index("Code Before Cursor")


def test_inline_prompt_is_deterministic():
    chunks = [{"text": "a", "source_name": "a.py"}]
    assert build_inline_prompt("x", "go", chunks) == build_inline_prompt("x", "go", chunks)


def test_format_context_chunks_keeps_order():
    rendered = format_context_chunks([
        {"text": "one", "source_name": "1.py"},
        {"text": "two", "source_name": "2.py"},
    ])
    assert rendered.index("one") < rendered.index("two")


class TestChatPrompt:

    def test_active_file_precedes_retrieved_chunks(self):
        prompt = build_chat_system_prompt(
            [{"text": "retrieved body", "source_name": "lib.py"}],
            active_file={"filename": "main.py", "content": "print('hi')"},
            os_name="linux",
        )

        assert "[ACTIVE FILE: main.py]\nprint('hi')" in prompt
        assert prompt.index("ACTIVE FILE") < prompt.index("[lib.py]")

    def test_shell_family_follows_os(self):
        assert "Shell: PowerShell/CMD" in build_chat_system_prompt(os_name="win32")
        assert "Shell: Bash/Zsh" in build_chat_system_prompt(os_name="darwin")

    def test_edit_format_is_described(self):
        prompt = build_chat_system_prompt()
        assert "<<<<<<< SEARCH" in prompt
        assert ">>>>>>> REPLACE" in prompt

    def test_messages_get_system_prompt_first(self):
        messages = [
            {"role": "user", "content": "What does add do?"},
            {"role": "assistant", "content": "It adds."},
            {"role": "user", "content": "Refactor it."},
        ]
        chat = build_chat_messages(messages, os_name="linux")

        assert chat[0]["role"] == "system"
        assert chat[1:] == messages
