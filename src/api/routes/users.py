"""User endpoints.

Only users older than the visibility threshold are ever returned. A hidden
user is indistinguishable from a missing one.
"""

import re
from typing import Annotated, Any

from fastapi import APIRouter, Body, Query, status

from src.api.constants import (
    INVALID_LIST_PARAMS_MESSAGE,
    LIMIT_OUT_OF_RANGE_MESSAGE,
    USER_NOT_FOUND_MESSAGE,
)
from src.api.schemas.errors import ErrorResponse
from src.api.schemas.users import UserListResponse, UserResponse
from src.api.utils.responses import serialize_document
from src.core.constants import (
    BSON_INT64_MAX,
    BSON_INT64_MIN,
    DEFAULT_LIST_LIMIT,
    DEFAULT_MIN_AGE,
    MAX_LIST_LIMIT,
    MIN_LIST_LIMIT,
)
from src.core.exceptions import NotFoundError, ValidationError
from src.infrastructure.database.dependencies import UserRepositoryDep

router = APIRouter(prefix="/users", tags=["users"])

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


# ASCII decimal integers, optionally negative, of at most 19 digits
INTEGER_PATTERN = re.compile(r"-?[0-9]{1,19}")


def _parse_int(value: str | None, default: int) -> int:
    """Parse a query parameter that must fit a BSON int64."""
    if value is None:
        return default
    if not INTEGER_PATTERN.fullmatch(value):
        raise ValidationError(INVALID_LIST_PARAMS_MESSAGE, context={"value": value})

    number = int(value)
    if not BSON_INT64_MIN <= number <= BSON_INT64_MAX:
        raise ValidationError(INVALID_LIST_PARAMS_MESSAGE, context={"value": value})
    return number


@router.get(
    "",
    response_model=UserListResponse,
    responses=ERROR_RESPONSES,
    summary="List users above an age",
)
async def list_users(
    repository: UserRepositoryDep,
    min_age: Annotated[
        str | None,
        Query(alias="minAge", description="Exclusive lower bound on age"),
    ] = None,
    limit: Annotated[
        str | None,
        Query(description=f"Page size, {MIN_LIST_LIMIT} to {MAX_LIST_LIMIT}"),
    ] = None,
) -> UserListResponse:
    """List users with ``age > minAge`` sorted by age, plus the total count."""
    min_age_value = _parse_int(min_age, DEFAULT_MIN_AGE)
    limit_value = _parse_int(limit, DEFAULT_LIST_LIMIT)
    if not MIN_LIST_LIMIT <= limit_value <= MAX_LIST_LIMIT:
        raise ValidationError(
            LIMIT_OUT_OF_RANGE_MESSAGE, context={"limit": limit_value}
        )

    users = await repository.find_by_age_filter(min_age_value, limit_value)
    total_count = await repository.count_by_age_filter(min_age_value)

    return UserListResponse(
        count=len(users),
        total_count=total_count,
        data=[serialize_document(user) for user in users],
    )


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    responses={
        **ERROR_RESPONSES,
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    },
    summary="Get a user by ID",
)
async def get_user(user_id: str, repository: UserRepositoryDep) -> UserResponse:
    """Return a user if it exists and is visible."""
    user = await repository.find_by_id(user_id)
    if user is None:
        raise NotFoundError(USER_NOT_FOUND_MESSAGE, context={"user_id": user_id})
    return UserResponse(data=serialize_document(user))


@router.post(
    "",
    response_model=UserResponse,
    responses=ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
)
async def create_user(
    repository: UserRepositoryDep,
    user_data: Annotated[
        dict[str, Any] | None,
        Body(
            examples=[
                {
                    "name": "David Miller",
                    "email": "david@example.com",
                    "age": 22,
                    "occupation": "Junior Developer",
                }
            ]
        ),
    ] = None,
) -> UserResponse:
    """Create a user. ``name``, ``email`` and a numeric ``age`` are required."""
    user = await repository.create(user_data or {})
    return UserResponse(data=serialize_document(user))
