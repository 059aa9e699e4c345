"""AI schemas - Pydantic models for categorization requests"""

from pydantic import BaseModel


class AICategorizeRequest(BaseModel):
    restaurant_id: str
