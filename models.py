"""Data models for the sensechat-proxy service."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

CHUNK_OBJECT = "chat.completion.chunk"

class ChatCompletionRequest(BaseModel):
    """Inbound chat-completion body.

    Only the keys the proxy rewrites are declared. Every other key lands in
    the extra bag and is forwarded untouched. The declared fields stay
    untyped so the rewrite rules can tell a number from anything else.
    """
    model_config = ConfigDict(extra="allow")

    model: Any = None
    max_tokens: Any = None
    frequency_penalty: Any = None
    top_p: Any = None

    def requested_model(self) -> str:
        return self.model if isinstance(self.model, str) else ""

class SplitCredential(BaseModel):
    """An `accessKey|secretKey` pair carried in an inbound bearer token."""
    access_key: str
    secret_key: str

class TokenClaims(BaseModel):
    """Claims of a minted upstream token."""
    iss: str
    exp: int
    nbf: int

# Upstream (SenseNova) streaming payloads

class UpstreamModel(BaseModel):
    """Strict base: a value of the wrong JSON type fails the whole event."""
    model_config = ConfigDict(strict=True)

class UpstreamChoice(UpstreamModel):
    index: int = 0
    role: Optional[str] = None
    delta: Optional[str] = None
    reasoning_content: Optional[str] = None
    finish_reason: Optional[str] = None

class UpstreamUsage(UpstreamModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    knowledge_tokens: int = 0
    total_tokens: int = 0

class UpstreamEventData(UpstreamModel):
    id: Optional[str] = None
    usage: Optional[UpstreamUsage] = None
    choices: Optional[List[UpstreamChoice]] = None
    plugins: Optional[Dict[str, Any]] = None

class UpstreamStatus(UpstreamModel):
    code: int = 0
    message: Optional[str] = None

class UpstreamEvent(UpstreamModel):
    """One decoded `data:` payload from the upstream event stream."""
    data: Optional[UpstreamEventData] = None
    status: Optional[UpstreamStatus] = None

# Client (OpenAI-style) streaming payloads

class ClientChoice(BaseModel):
    index: int
    delta: Dict[str, str] = Field(default_factory=dict)
    logprobs: Optional[Any] = None
    finish_reason: Optional[str] = None

class ClientEvent(BaseModel):
    """One `chat.completion.chunk` sent to the client."""
    id: str
    object: str = CHUNK_OBJECT
    created: int
    model: str
    system_fingerprint: str
    choices: List[ClientChoice] = Field(default_factory=list)
