from pydantic import BaseModel, ConfigDict
from datetime import date


class WeekResponse(BaseModel):
    id: int
    parish_id: int
    starts_on: date
    ends_on: date
    label: str

    model_config = ConfigDict(from_attributes=True)
