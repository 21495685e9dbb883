from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class WireModel(BaseModel):
    """Base model accepting both wire aliases and Python field names."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    def to_wire(self) -> dict:
        """Dump using wire aliases, omitting unset optional fields."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
