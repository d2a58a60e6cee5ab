"""Response envelopes for the user endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class UserResponse(BaseModel):
    """A single user."""

    success: bool = Field(default=True, description="Always true on success")
    data: dict[str, Any] = Field(
        ...,
        description="The user document, with _id as a hex string",
        examples=[
            {
                "_id": "65f1c0ffee0000000000abcd",
                "name": "David Miller",
                "email": "david@example.com",
                "age": 22,
                "occupation": "Junior Developer",
            }
        ],
    )


class UserListResponse(BaseModel):
    """A page of users plus the total number matching the filter."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(default=True, description="Always true on success")
    count: int = Field(..., ge=0, description="Number of users in this page")
    total_count: int = Field(
        ...,
        ge=0,
        alias="totalCount",
        description="Number of users matching the filter, ignoring limit",
    )
    data: list[dict[str, Any]] = Field(..., description="Users sorted by age")
