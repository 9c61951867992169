"""
Pydantic schemas for the advice endpoint.
"""

from pydantic import BaseModel, Field


class AdviceRequest(BaseModel):
    question: str = Field(min_length=1, max_length=2000)


class AdviceResponse(BaseModel):
    answer: str
