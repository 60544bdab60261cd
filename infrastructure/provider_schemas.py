"""Wire models for the OpenAI-compatible provider API"""
from pydantic import BaseModel
from typing import Optional, List, Union


class ChatMessage(BaseModel):
    role: str  # 'system' | 'user' | 'assistant'
    content: str


class EmbeddingRequest(BaseModel):
    input: Union[str, List[str]]
    model: str


class EmbeddingItem(BaseModel):
    embedding: List[float]
    index: int


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class EmbeddingResponse(BaseModel):
    data: List[EmbeddingItem]
    model: Optional[str] = None
    usage: Optional[Usage] = None

    def ordered_embeddings(self) -> List[List[float]]:
        """Embeddings sorted by the provider's index field."""
        return [item.embedding for item in sorted(self.data, key=lambda item: item.index)]


class ChatCompletionRequest(BaseModel):
    messages: List[ChatMessage]
    model: str
    temperature: float
    max_tokens: int
    stream: bool = False


class ChoiceMessage(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class Choice(BaseModel):
    index: int = 0
    message: ChoiceMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    choices: List[Choice]
    model: Optional[str] = None
    usage: Optional[Usage] = None

    @property
    def content(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].message.content or ""
