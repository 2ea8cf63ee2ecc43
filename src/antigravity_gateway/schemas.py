from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "system", "assistant"]
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _fold_content_parts(cls, value: Any) -> Any:
        # OpenAI clients may send [{"type": "text", "text": "..."}, ...]
        if value is None:
            return ""
        if isinstance(value, list):
            return "".join(
                part.get("text") or ""
                for part in value
                if isinstance(part, dict) and part.get("type") == "text"
            )
        return value


class SamplingParams(BaseModel):
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int | None = None


class ChatCompletionRequest(SamplingParams):
    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage] | None = None
    model: str = ""
    stream: bool = True
    tools: list[dict[str, Any]] | None = None

    def sampling_params(self) -> SamplingParams:
        return SamplingParams(
            temperature=self.temperature,
            top_p=self.top_p,
            top_k=self.top_k,
            max_tokens=self.max_tokens,
        )


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ModelCard(BaseModel):
    id: str
    object: str = "model"
    created: int
    owned_by: str = "google"


class ModelList(BaseModel):
    object: str = "list"
    data: list[ModelCard]
