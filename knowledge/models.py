from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class SourceDescriptor(BaseModel):
    title: str = ""
    type: str = ""
    url: str = ""
    filename: str = ""


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str
    mime_type: str = "text/plain"


class ImageContent(BaseModel):
    type: Literal["image"] = "image"
    data: str = Field(..., description="Base64-encoded image bytes")
    mime_type: str = "image/png"


DocumentContent = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]


class Document(BaseModel):
    id: str = ""
    content: DocumentContent
    embedding_text: str = ""
    embedding: Optional[list[float]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        """Text a reranker or prompt should see for this document."""
        if isinstance(self.content, TextContent):
            return self.content.text
        return self.embedding_text

    @classmethod
    def from_text(cls, text: str, **kwargs: Any) -> "Document":
        kwargs.setdefault("embedding_text", text)
        return cls(content=TextContent(text=text), **kwargs)


class KnowledgeCollection(BaseModel):
    id: str = ""
    source: SourceDescriptor = Field(default_factory=SourceDescriptor)
    metadata: dict[str, Any] = Field(default_factory=dict)
    documents: list[Document] = Field(default_factory=list)


class SearchResult(BaseModel):
    document: Document
    score: float = Field(..., ge=0.0, le=1.0)


class RerankResult(BaseModel):
    content: str
    score: float = Field(..., ge=0.0, le=1.0)
    index: int = Field(..., ge=0, description="Position in the candidate list")
