from typing import Optional
from pydantic import BaseModel, Field, StrictInt, StrictStr

class ProductPayload(BaseModel):
    # Corps de POST / PUT : l'id est optionnel et ignoré à la création
    id: Optional[StrictInt] = None
    name: StrictStr = ""
    price: float = Field(default=0.0, strict=True, allow_inf_nan=False)

class ProductResponse(BaseModel):
    id: int
    name: str
    price: float

    class Config:
        from_attributes = True
