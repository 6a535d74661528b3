"""
Prompt assembly for inline completion and chat.

Templates are deterministic: the same inputs always produce the same prompt.
The assembler never inspects the environment; the caller supplies the OS
family for chat.
"""

from typing import Any, Dict, List, Optional, Sequence

SEARCH_MARKER = "<<<<<<< SEARCH"
DIVIDER_MARKER = "======="
REPLACE_MARKER = ">>>>>>> REPLACE"


def _chunk_field(chunk: Any, name: str) -> str:
    if isinstance(chunk, dict):
        return str(chunk.get(name, ""))
    return str(getattr(chunk, name, ""))


def format_context_chunks(chunks: Sequence[Any]) -> str:
    """Render retrieved chunks, each tagged with its source file."""
    rendered = []
    for chunk in chunks:
        source = _chunk_field(chunk, "source_name")
        text = _chunk_field(chunk, "text")
        rendered.append(f"<file: {source}>\n{text}\n<end file>")
    return "\n".join(rendered)


def build_inline_prompt(limited_code: str, language: str, context_chunks: Optional[Sequence[Any]] = None) -> str:
    """
    Build the inline-completion prompt.

    Args:
        limited_code: Code before the cursor, already limited
        language: Target language identifier
        context_chunks: Retrieved records (objects or dicts with text and source_name)

    Returns:
        Prompt text ending with the code verbatim
    """
    context_chunks = list(context_chunks or [])
    context_section = ""
    if context_chunks:
        context_section = f"\nRelevant Project Context:\n{format_context_chunks(context_chunks)}\n"

    return (
        "System:\n"
        f"You are a professional {language} developer.\n"
        "Mode: Inline Completion.\n"
        f"{context_section}\n"
        "Rules:\n"
        "- Predict the next valid tokens.\n"
        "- Do not repeat existing code.\n"
        "- Do not explain.\n"
        "- Do not use markdown.\n"
        "- Do not include comments unless necessary.\n"
        "- Stop naturally when completion feels complete.\n"
        "\n"
        "Code Before Cursor:\n"
        f"{limited_code}"
    )


def shell_family(os_name: str) -> str:
    """Shell hint for the OS name reported by the editor."""
    return "PowerShell/CMD" if os_name == "win32" else "Bash/Zsh"


def build_chat_system_prompt(context_chunks: Optional[Sequence[Any]] = None,
                             active_file: Optional[Dict[str, str]] = None,
                             os_name: str = "unknown") -> str:
    """
    Build the chat system prompt.

    The active file, when supplied, is placed ahead of retrieved chunks.
    """
    sections = [f"[{_chunk_field(c, 'source_name')}]\n{_chunk_field(c, 'text')}" for c in (context_chunks or [])]
    context_text = "\n---\n".join(sections)
    if active_file:
        context_text = (
            f"[ACTIVE FILE: {active_file.get('filename', 'untitled')}]\n"
            f"{active_file.get('content', '')}\n\n---\n{context_text}"
        )

    return (
        "You are a professional AI coding assistant.\n"
        "Use the following project context if relevant:\n"
        "---\n"
        f"{context_text}\n"
        "---\n"
        "ENVIRONMENT:\n"
        f"- Operating System: {os_name}\n"
        f"- Shell: {shell_family(os_name)}\n"
        "\n"
        "Rules:\n"
        "- Be concise and technical.\n"
        "- ALWAYS use triple backticks (```) for any code or commands.\n"
        "- You can edit files and run terminal commands through specialized blocks.\n"
        "- FILE EDITS: For any refactor/cleanup, you MUST use this EXACT Search/Replace format:\n"
        "  ```\n"
        f"  {SEARCH_MARKER}\n"
        "  [exact code to find]\n"
        f"  {DIVIDER_MARKER}\n"
        "  [new code]\n"
        f"  {REPLACE_MARKER}\n"
        "  ```\n"
        "- CLI ACCESS: To run a terminal command (tests, installs, etc.), use a shell block:\n"
        "  ```sh\n"
        "  [command]\n"
        "  ```\n"
        "- Use complete SEARCH blocks for perfect matches.\n"
        "- Work with the provided context."
    )


def build_chat_messages(messages: Sequence[Dict[str, str]],
                        context_chunks: Optional[Sequence[Any]] = None,
                        active_file: Optional[Dict[str, str]] = None,
                        os_name: str = "unknown") -> List[Dict[str, str]]:
    """Prepend the system prompt to the client's message list."""
    system = build_chat_system_prompt(context_chunks, active_file, os_name)
    chat_messages = [{"role": "system", "content": system}]
    chat_messages.extend({"role": m["role"], "content": m["content"]} for m in messages)
    return chat_messages
