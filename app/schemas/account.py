from typing import Optional
from pydantic import BaseModel, UUID4


# Compact account for nested responses
class AccountSummary(BaseModel):
    id: UUID4
    email: str
    full_name: str
    phone: Optional[str] = None

    class Config:
        from_attributes = True
