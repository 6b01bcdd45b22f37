from typing import Optional
from pydantic import BaseModel, ConfigDict


class Account(BaseModel):
    """Directory snapshot of an account, enough to identify a match"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    email: str
    username: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email.split("@")[0]
