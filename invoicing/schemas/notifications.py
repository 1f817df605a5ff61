from typing import List, Optional

from pydantic import BaseModel, Field


class EmailAttachment(BaseModel):
    filename: str
    content: str  # base64
    content_type: str = Field(default="application/pdf", serialization_alias="contentType")


class EmailMessage(BaseModel):
    to: str
    subject: str
    html: str
    attachments: List[EmailAttachment] = Field(default_factory=list)


class EmailReceipt(BaseModel):
    message_id: Optional[str] = None
    status: str = "queued"
