"""
Request and response models for the HTTP surface.
Field aliases match the camelCase names the editor extension sends.
"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List

from ..core.config import DEFAULT_SESSION_ID


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code_before_cursor: str = Field(alias="codeBeforeCursor")
    language: str
    request_id: str = Field(default=DEFAULT_SESSION_ID, alias="requestId")
    filename: str = "file"
    cursor_index: Optional[int] = Field(default=None, alias="cursorIndex", ge=0)

    @field_validator('code_before_cursor')
    @classmethod
    def code_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('codeBeforeCursor is required and must be a string')
        return v

    @field_validator('language')
    @classmethod
    def language_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('language is required')
        return v


class IndexRequest(BaseModel):
    text: str
    filename: str

    @field_validator('text', 'filename')
    @classmethod
    def must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('Text and filename required')
        return v


class IndexResponse(BaseModel):
    message: str
    chunks: int
    added: int


class TerminalRequest(BaseModel):
    command: str
    cwd: Optional[str] = None

    @field_validator('command')
    @classmethod
    def command_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('Command required')
        return v


class CommandResponse(BaseModel):
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None
    duration_ms: float = 0.0


class ChatMessage(BaseModel):
    role: str
    content: str

    @field_validator('role')
    @classmethod
    def role_must_be_valid(cls, v):
        valid_roles = ['system', 'user', 'assistant']
        if v not in valid_roles:
            raise ValueError(f'role must be one of: {valid_roles}')
        return v


class ActiveContext(BaseModel):
    filename: str
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage]
    active_context: Optional[ActiveContext] = Field(default=None, alias="activeContext")
    os: str = "unknown"
    request_id: str = Field(default="chat-session", alias="requestId")

    @field_validator('messages')
    @classmethod
    def messages_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('Messages array required')
        return v


class HealthResponse(BaseModel):
    status: str
    version: str
    ollama_available: bool
    store_records: int
    active_sessions: int


class ApplyEditRequest(BaseModel):
    original: str
    output: str


class ApplyEditResponse(BaseModel):
    text: str
    blocks: int
