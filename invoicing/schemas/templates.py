from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PresentationMode(str, Enum):
    PLAIN = "plain"
    INTERACTIVE = "interactive"


class Template(BaseModel):
    id: str
    name: str = ""
    html: str
    css: str = ""
    company_id: str
    is_default: bool = False
    credential: Optional[str] = None
