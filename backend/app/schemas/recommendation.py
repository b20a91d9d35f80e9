from pydantic import BaseModel
from typing import List
from app.schemas.book import BookResponse


class RecommendationsData(BaseModel):
    recommendations: List[BookResponse]
    reason: str
