from pydantic import BaseModel, ConfigDict


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    def as_param(self) -> str:
        return f"{self.lat},{self.lng}"


class RouteMeasurement(BaseModel):
    model_config = ConfigDict(frozen=True)

    meters: float
    seconds: float

    @property
    def kilometers(self) -> float:
        return self.meters / 1000
