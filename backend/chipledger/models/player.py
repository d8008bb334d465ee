"""Player identity as exposed by the Player Registry.

Players are owned by an external registry (the ``players`` collection).
The ledger only reads them: id, display name and the soft-delete flag.
"""

from typing import Optional

from pydantic import BaseModel, Field

from chipledger.models.common import PyObjectId


class Player(BaseModel):
    """Read-only view of a registered player."""

    model_config = {"populate_by_name": True}

    id: PyObjectId = Field(alias="_id")
    display_name: str = Field(alias="name")
    deleted: bool = Field(default=False, alias="is_deleted")
    avatar_color: Optional[str] = None

    @property
    def is_available(self) -> bool:
        """True if the player can join games."""
        return not self.deleted
