from typing import Optional

from pydantic import BaseModel, ConfigDict

from tasklist_engine.domain import ResourceContent


class RegisterRequest(BaseModel):
    name: str
    email: str
    passwd: str


class LoginRequest(BaseModel):
    email: str
    passwd: str


class ContentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    body: Optional[str] = None
    timestamp: Optional[str] = None

    def to_content(self) -> ResourceContent:
        return ResourceContent(self.name, self.body, self.timestamp)
