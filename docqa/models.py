# docqa/models.py
from pydantic import BaseModel, Field, validator
from typing import List, Literal, Optional


class UploadResponse(BaseModel):
    """Response after uploading a document."""
    document_id: str
    filename: str
    chunks_created: int
    message: str = "Document uploaded and indexed successfully"


class ChatTurn(BaseModel):
    """One earlier turn of the conversation."""
    role: Literal["user", "assistant"]
    text: str = Field(..., max_length=4000)


class AskRequest(BaseModel):
    """Request to ask a question about a document."""
    document_id: str = Field(..., min_length=1, max_length=100)
    question: str = Field(..., min_length=1, max_length=1000)
    recent_history: List[ChatTurn] = Field(default_factory=list)

    @validator('question')
    def validate_question(cls, v):
        """Ensure question is not just whitespace."""
        if not v.strip():
            raise ValueError("Question cannot be empty or only whitespace")
        return v.strip()

    @validator('document_id')
    def validate_document_id(cls, v):
        """Ensure document_id is not just whitespace."""
        if not v.strip():
            raise ValueError("Document ID cannot be empty")
        return v.strip()


class SourceItem(BaseModel):
    """A chunk the answer was built from."""
    text: str
    document_id: str
    file_name: Optional[str] = None
    page_number: Optional[int] = None


class AskResponse(BaseModel):
    """Response after asking a question."""
    answer: str
    sources: List[SourceItem] = Field(default_factory=list)
    strategy: Optional[str] = None


class DocumentInfo(BaseModel):
    """Information about a stored document."""
    document_id: str
    filename: Optional[str] = None
    chunks_count: int
    upload_timestamp: Optional[str] = None


class ListDocumentsResponse(BaseModel):
    """Response listing all documents in the system."""
    documents: List[DocumentInfo]
    total_documents: int
    total_chunks: int


class DeleteDocumentResponse(BaseModel):
    """Response after deleting a document."""
    document_id: str
    message: str
    chunks_deleted: int
    success: bool


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store_backend: str
    total_documents: int
    total_chunks: int
    embeddings_available: bool
    llm_available: bool
