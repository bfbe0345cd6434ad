from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MachineType = Literal["FREEZER", "CHILLER"]
UserRole = Literal["ADMIN", "USER"]


class Machine(BaseModel):
    id: str = Field(min_length=1)
    name: str
    type: MachineType = "FREEZER"
    default_setpoint: float = 0.0


class Meter(BaseModel):
    id: str = Field(min_length=1)
    name: str


class Generator(BaseModel):
    id: str = Field(min_length=1)
    name: str
    model: str = ""
    air_filter: str = ""
    oil_filter: str = ""
    fuel_filter: str = ""
    fan_belt: str = ""
    water_separator: str = ""


class PublicUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str
    name: str
    role: UserRole = "USER"


class User(PublicUser):
    password: str | None = None

    def public(self) -> PublicUser:
        return PublicUser(username=self.username, name=self.name, role=self.role)


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=128)
    role: UserRole = "USER"

    @field_validator("username", "name", mode="before")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class BridgeSettingsResponse(BaseModel):
    sheet_url: str
    configured: bool
    api_key_configured: bool


class BridgeUrlUpdate(BaseModel):
    sheet_url: str = Field(max_length=2048)


class ApiKeyUpdate(BaseModel):
    api_key: str = Field(min_length=1, max_length=512)
    upload_to_cloud: bool = True


class GeneratorServiceStatus(BaseModel):
    generator_id: str
    hours_since_service: float
    status: Literal["GOOD", "WARNING", "CRITICAL"]
    current_reading: float
    last_service_timestamp: str | None = None


class MachineStatus(BaseModel):
    machine_id: str
    status: Literal["GOOD", "ISSUE"]
    record_count: int


DEFAULT_MACHINES: tuple[Machine, ...] = (
    Machine(id="cf-01", name="Chest Freezer 01", type="FREEZER", default_setpoint=-18),
)

DEFAULT_METERS: tuple[Meter, ...] = (
    Meter(id="m-01", name="Main Meter"),
    Meter(id="m-02", name="Load 1"),
    Meter(id="m-03", name="Load 2"),
    Meter(id="m-04", name="Female Hostel"),
    Meter(id="m-05", name="Male Hostel"),
    Meter(id="m-06", name="Warehouse"),
    Meter(id="m-07", name="Office"),
    Meter(id="m-08", name="K1"),
    Meter(id="m-09", name="K2"),
    Meter(id="m-10", name="Solar Power"),
)


def _gen(
    name: str,
    model: str,
    air: str,
    oil: str,
    fuel: str,
    belt: str = "",
    water: str = "",
) -> Generator:
    return Generator(
        id=name,
        name=name,
        model=model,
        air_filter=air,
        oil_filter=oil,
        fuel_filter=fuel,
        fan_belt=belt,
        water_separator=water,
    )


DEFAULT_GENERATORS: tuple[Generator, ...] = (
    _gen("KMD", "Pai Kane", "A-5541-S", "C-1701", "FC-52040"),
    _gen("HLD", "Gesan", "A-7003-S", "C-5102, C-7103", "EF-51040"),
    _gen("LMD", "Denyo", "A-5628", "O-1314, BO-177", "F-1303", "B-50"),
    _gen("Sule", "Gesan", "WHK 1930587, A-7003-S", "C-5102", "EF-51040", "EO 8.5L, CL 14L"),
    _gen("BAK", "Gesan", "WHK 1930587, A-7003-S", "C-5102", "EF-51040"),
    _gen("TSL", "Denyo", "HMG-056D, K-1530, A-5558", "O1301", "BF-101", "RECMF-8480"),
    _gen("TGG", "Pai Kane 30kva", "A-8506-S", "C-1701", "FC-52040", "", "F-1004"),
    _gen("SBT", "Denyo", "A-5628", "O-13254", "FC-1503", "B-50"),
    _gen("SPT", "Pai Kane", "A-5541-S", "C-1701", "FC-52040"),
    _gen("ND", "Denyo", "A-1014", "BO-177", "FC-1004, FC-1020", "RECMF-8480"),
    _gen("ZM", "Gesan", "WHK 1930587, A-7003-S", "C-5102", "EF-51040"),
    _gen("HW", "Denyo", "A-6012", "CO-1304", "FC-1503"),
    _gen("TKT", "Gesan", "AS-51540", "C-1142", "FC-1702", "RECMF 6385"),
    _gen("IS", "Denyo", "A1176", "O1301", "F-1303", "B-50"),
    _gen("MNG", "Denyo", "A-5628", "BO-177", "F-1303", "RCMF 8500"),
    _gen("Parami", "Gesan", "A-8506-S", "C-5102", "EF 51040", "RECMF 6530"),
    _gen(
        "K1",
        "Kohler",
        "A-2418",
        "C-5501*2, C-5717",
        "FC-7108/ FC-7104",
        "41468/ 330051537",
        "SFC-7103-30, GM41512",
    ),
    _gen(
        "K2",
        "Kohler",
        "A-2418",
        "C-5501*2, C-5717",
        "FC-7108/ FC-7105",
        "41468/ 330051537",
        "SFC-7103-30, GM41512",
    ),
)
