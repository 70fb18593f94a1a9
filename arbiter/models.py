"""Shared pydantic base for values exposed on the wire."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Immutable model serialized with camelCase keys.

    The camelCase JSON produced by ``to_wire`` is what streaming and
    reporting consumers read, so field renames must keep their aliases.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
