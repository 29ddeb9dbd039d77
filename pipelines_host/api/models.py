# ============================================================================
# API Models - Request and Response Schemas
# ============================================================================

"""
Pydantic models for API request/response validation.
Used for type hints and OpenAPI documentation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# ADMIN REQUEST MODELS
# ============================================================================


class AddPipelineRequest(BaseModel):
    """Download a pipeline source from a URL."""
    url: str = Field(..., min_length=1, description="http(s) URL of a .py pipeline source")

    model_config = ConfigDict(
        json_schema_extra={"example": {"url": "https://example.com/pipelines/echo.py"}}
    )


class DeletePipelineRequest(BaseModel):
    """Delete a pipeline by identifier."""
    id: str = Field(..., min_length=1, description="Pipeline identifier")


class ReloadPipelineRequest(BaseModel):
    """Reload one pipeline, or all of them when id is omitted."""
    id: Optional[str] = Field(None, description="Pipeline identifier")


class FilterRequest(BaseModel):
    """Run a single inlet/outlet stage."""
    body: Any = Field(..., description="Body handed to the filter")
    user: Optional[Any] = Field(None, description="Optional user object")


# ============================================================================
# CHAT COMPLETION MODELS
# ============================================================================


class ChatMessage(BaseModel):
    role: str
    content: Any = None

    model_config = ConfigDict(extra="allow")


class ChatCompletionRequest(BaseModel):
    """OpenAI-style chat completion request; unknown fields pass through."""
    model: str = Field(..., min_length=1, description="Pipeline identifier")
    messages: List[ChatMessage] = Field(default_factory=list)
    user: Optional[Any] = None

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "model": "echo",
                "messages": [{"role": "user", "content": "Hello"}],
            }
        },
    )


class ChatCompletionMessage(BaseModel):
    role: str = "assistant"
    content: str


class ChatCompletionChoice(BaseModel):
    index: int = 0
    message: ChatCompletionMessage
    finish_reason: str = "stop"


class ChatCompletionResponse(BaseModel):
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ChatCompletionChoice]
    warnings: Optional[List[str]] = None


# ============================================================================
# LISTING MODELS
# ============================================================================


class ModelPipelineInfo(BaseModel):
    type: str
    valves: bool


class ModelCard(BaseModel):
    id: str
    name: str
    object: str = "model"
    created: int
    owned_by: str
    pipeline: ModelPipelineInfo


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelCard] = []


class PipelineListResponse(BaseModel):
    data: List[Dict[str, Any]] = []


class HealthCheckResponse(BaseModel):
    status: bool = True
    version: str
