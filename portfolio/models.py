"""Portfolio payload schema used to validate writes and stored files."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Aporte(BaseModel):
    """A single contribution into a fund."""

    model_config = ConfigDict(populate_by_name=True)

    value: str = ""
    return_: str = Field(default="", alias="return")
    date: str = ""


class Balance(BaseModel):
    date: str = ""
    value: str = ""


class Fund(BaseModel):
    name: str = ""
    enabled: bool = False
    target: str = ""
    expanded: bool = False
    id: str = ""
    aportes: list[Aporte] = Field(default_factory=list)
    balances: list[Balance] = Field(default_factory=list)

    @field_validator("aportes", "balances", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class PortfolioData(BaseModel):
    """Top-level portfolio document."""

    funds: list[Fund] = Field(default_factory=list)
    capital: str = ""
    cdi: str = ""
    strategy: str = ""

    @field_validator("funds", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # null は空リストとして受け付ける
        return [] if value is None else value

    def to_document(self) -> dict[str, Any]:
        """Plain JSON-ready dict with the wire field names."""
        return self.model_dump(by_alias=True)


def empty_document() -> dict[str, Any]:
    """Document served when no portfolio file exists yet."""
    return PortfolioData().to_document()


def decode_document(data: Any) -> dict[str, Any]:
    """Validate parsed JSON and fill missing fields with their zero values."""
    return PortfolioData.model_validate(data).to_document()
