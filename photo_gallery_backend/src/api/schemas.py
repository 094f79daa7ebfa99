from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    message: str = Field(..., description="Health status message")


class TokenResponse(BaseModel):
    token: str = Field(..., description="Opaque bearer token")


class Photo(BaseModel):
    """A stored photo record. `displayOrder` is the wire and storage name."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Photo ID")
    title: str = Field(..., min_length=1, description="Display title")
    description: str = Field("", description="Optional description")
    filename: str = Field(..., min_length=1, description="Blob store filename")
    display_order: int = Field(0, alias="displayOrder", description="Display ranking")

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True)


class PhotoOut(Photo):
    url: str = Field(..., description="URL of the image file")


class ReorderRequest(BaseModel):
    # Checked by the reorder engine so every malformed order gets the same 400 message.
    order: Any = Field(None, description="Photo IDs in the desired display order")


class DeleteResponse(BaseModel):
    message: str = Field(..., description="Human readable message")
    photo: PhotoOut = Field(..., description="The removed photo")
