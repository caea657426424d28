"""
Data models for the queue API.
"""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DeliveryOutcome(str, Enum):
    """Terminal outcome reported for a work item."""
    COMPLETADO = "COMPLETADO"
    ERROR = "ERROR"


class DeliveryItem(BaseModel):
    """One outbound message as returned by the pending-messages endpoint."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int | str = Field(validation_alias="id_proveedor_envio_sms")
    destination: str = Field(validation_alias="numero_destino")
    body: str = Field(validation_alias="mensaje")

    @field_validator("destination", "body", mode="before")
    @classmethod
    def _stringify(cls, value):
        # Numbers sometimes arrive as JSON integers
        if isinstance(value, (int, float)):
            return str(value)
        return value


@dataclass
class PendingItems:
    """Result of a fetch; ``error`` is a short tag when the fetch failed."""
    items: list[DeliveryItem] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


__all__ = ["DeliveryOutcome", "DeliveryItem", "PendingItems"]
