"""Unit tests for UserRepository."""

import pytest
from bson import ObjectId
from pymongo import ASCENDING
from pymongo.errors import AutoReconnect, DuplicateKeyError
from pytest_mock import MockerFixture, MockType

from src.core.exceptions import ConflictError, ServerError, ValidationError
from src.infrastructure.database.repository import UserRepository

USER_ID = "65f1c0ffee0000000000abcd"


@pytest.fixture
def repository(collection: MockType) -> UserRepository:
    """A repository over the fake collection."""
    return UserRepository(collection)


@pytest.fixture
def cursor(mocker: MockerFixture, collection: MockType) -> MockType:
    """The cursor chain returned by ``collection.find``."""
    chain = mocker.MagicMock()
    chain.sort.return_value = chain
    chain.limit.return_value = chain
    chain.to_list = mocker.AsyncMock(return_value=[])
    collection.find.return_value = chain
    return chain


@pytest.mark.unit
class TestFindById:
    """Test single-user lookup."""

    async def test_applies_visibility_filter(
        self, repository: UserRepository, collection: MockType
    ) -> None:
        """Test the query restricts age to above the threshold."""
        user = {"_id": ObjectId(USER_ID), "name": "David", "age": 22}
        collection.find_one.return_value = user

        assert await repository.find_by_id(USER_ID) == user
        collection.find_one.assert_awaited_once_with(
            {"_id": ObjectId(USER_ID), "age": {"$gt": 21}}
        )

    async def test_hidden_or_missing_returns_none(
        self, repository: UserRepository
    ) -> None:
        """Test a filtered-out user looks like a missing one."""
        assert await repository.find_by_id(USER_ID) is None

    @pytest.mark.parametrize("user_id", ["123", "not-an-id", "z" * 24, ""])
    async def test_invalid_id(
        self, repository: UserRepository, collection: MockType, user_id: str
    ) -> None:
        """Test malformed ids are rejected before querying."""
        with pytest.raises(ValidationError, match="Invalid user ID format"):
            await repository.find_by_id(user_id)
        collection.find_one.assert_not_awaited()

    async def test_custom_threshold(self, collection: MockType) -> None:
        """Test the threshold is configurable."""
        await UserRepository(collection, visibility_threshold=30).find_by_id(USER_ID)
        query = collection.find_one.await_args.args[0]
        assert query["age"] == {"$gt": 30}

    async def test_driver_error(
        self, repository: UserRepository, collection: MockType
    ) -> None:
        """Test driver failures become server errors."""
        collection.find_one.side_effect = AutoReconnect("gone")

        with pytest.raises(ServerError) as exc_info:
            await repository.find_by_id(USER_ID)
        assert exc_info.value.context == {"operation": "find_by_id"}
        assert isinstance(exc_info.value.__cause__, AutoReconnect)


@pytest.mark.unit
class TestListAndCount:
    """Test the age-filtered listing."""

    async def test_defaults(
        self, repository: UserRepository, collection: MockType, cursor: MockType
    ) -> None:
        """Test the default filter, sort and limit."""
        users = [{"name": "David", "age": 22}]
        cursor.to_list.return_value = users

        assert await repository.find_by_age_filter() == users
        collection.find.assert_called_once_with({"age": {"$gt": 21}})
        cursor.sort.assert_called_once_with("age", ASCENDING)
        cursor.limit.assert_called_once_with(10)
        cursor.to_list.assert_awaited_once_with(length=10)

    async def test_custom_filter(
        self, repository: UserRepository, collection: MockType, cursor: MockType
    ) -> None:
        """Test min age and limit are passed through."""
        await repository.find_by_age_filter(min_age=30, limit=2)

        collection.find.assert_called_once_with({"age": {"$gt": 30}})
        cursor.limit.assert_called_once_with(2)

    async def test_list_driver_error(
        self, repository: UserRepository, cursor: MockType
    ) -> None:
        """Test cursor failures become server errors."""
        cursor.to_list.side_effect = AutoReconnect("gone")

        with pytest.raises(ServerError):
            await repository.find_by_age_filter()

    async def test_count(
        self, repository: UserRepository, collection: MockType
    ) -> None:
        """Test counting ignores the page limit."""
        collection.count_documents.return_value = 7

        assert await repository.count_by_age_filter(25) == 7
        collection.count_documents.assert_awaited_once_with({"age": {"$gt": 25}})

    async def test_count_driver_error(
        self, repository: UserRepository, collection: MockType
    ) -> None:
        """Test count failures become server errors."""
        collection.count_documents.side_effect = AutoReconnect("gone")

        with pytest.raises(ServerError):
            await repository.count_by_age_filter()


@pytest.mark.unit
class TestCreate:
    """Test user creation."""

    async def test_inserts_document(
        self, mocker: MockerFixture, repository: UserRepository, collection: MockType
    ) -> None:
        """Test a valid user is stored with its new id."""
        new_id = ObjectId()
        collection.insert_one.return_value = mocker.Mock(inserted_id=new_id)
        payload = {"name": "Test", "email": "t@example.com", "age": 25, "role": "qa"}

        created = await repository.create(payload)

        assert created == {**payload, "_id": new_id}
        assert "_id" not in payload
        collection.find_one.assert_awaited_once_with({"email": "t@example.com"})

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "t@example.com", "age": 25},
            {"name": "Test", "age": 25},
            {"name": "Test", "email": "t@example.com"},
            {"name": "", "email": "t@example.com", "age": 25},
            {"name": "Test", "email": "t@example.com", "age": None},
            {},
        ],
    )
    async def test_missing_required_fields(
        self,
        repository: UserRepository,
        collection: MockType,
        payload: dict[str, object],
    ) -> None:
        """Test name, email and age must all be present."""
        with pytest.raises(
            ValidationError, match="Name, email, and age are required fields"
        ):
            await repository.create(payload)
        collection.insert_one.assert_not_awaited()

    async def test_age_zero_is_accepted(
        self, mocker: MockerFixture, repository: UserRepository, collection: MockType
    ) -> None:
        """Test zero counts as a present age."""
        collection.insert_one.return_value = mocker.Mock(inserted_id=ObjectId())

        created = await repository.create(
            {"name": "Baby", "email": "b@example.com", "age": 0}
        )
        assert created["age"] == 0

    @pytest.mark.parametrize("age", ["25", True, [25], float("nan"), float("inf")])
    async def test_non_numeric_age(
        self, repository: UserRepository, collection: MockType, age: object
    ) -> None:
        """Test age must be a finite number."""
        with pytest.raises(ValidationError, match="Age must be a number"):
            await repository.create(
                {"name": "Test", "email": "t@example.com", "age": age}
            )
        collection.insert_one.assert_not_awaited()

    @pytest.mark.parametrize("age", [2**63, -(2**63) - 1, 10**20, 1e20])
    async def test_age_beyond_int64(
        self, repository: UserRepository, collection: MockType, age: float
    ) -> None:
        """Test ages BSON cannot encode are rejected before any query."""
        with pytest.raises(ValidationError, match="Age is out of range"):
            await repository.create(
                {"name": "Test", "email": "t@example.com", "age": age}
            )
        collection.find_one.assert_not_awaited()
        collection.insert_one.assert_not_awaited()

    async def test_int64_bounds_are_accepted(
        self, mocker: MockerFixture, repository: UserRepository, collection: MockType
    ) -> None:
        """Test the largest int64 is stored unchanged."""
        collection.insert_one.return_value = mocker.Mock(inserted_id=ObjectId())

        created = await repository.create(
            {"name": "Test", "email": "t@example.com", "age": 2**63 - 1}
        )

        assert created["age"] == 2**63 - 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Test", "email": {"$ne": None}, "age": 30},
            {"name": "Test", "email": ["t@example.com"], "age": 30},
            {"name": 42, "email": "t@example.com", "age": 30},
            {"name": {"first": "Test"}, "email": "t@example.com", "age": 30},
        ],
    )
    async def test_name_and_email_must_be_strings(
        self,
        repository: UserRepository,
        collection: MockType,
        payload: dict[str, object],
    ) -> None:
        """Test operator documents never reach the email lookup."""
        with pytest.raises(ValidationError, match="Name and email must be strings"):
            await repository.create(payload)
        collection.find_one.assert_not_awaited()
        collection.insert_one.assert_not_awaited()

    @pytest.mark.parametrize(("age", "stored"), [(25.0, 25), (25.5, 25.5)])
    async def test_float_ages(
        self,
        mocker: MockerFixture,
        repository: UserRepository,
        collection: MockType,
        age: float,
        stored: float,
    ) -> None:
        """Test integral floats are stored as integers."""
        collection.insert_one.return_value = mocker.Mock(inserted_id=ObjectId())

        created = await repository.create(
            {"name": "Test", "email": "t@example.com", "age": age}
        )

        assert created["age"] == stored
        assert type(created["age"]) is type(stored)

    async def test_existing_email(
        self, repository: UserRepository, collection: MockType
    ) -> None:
        """Test the email pre-check rejects duplicates."""
        collection.find_one.return_value = {"email": "t@example.com"}

        with pytest.raises(ConflictError, match="A user with this email already"):
            await repository.create(
                {"name": "Test", "email": "t@example.com", "age": 25}
            )
        collection.insert_one.assert_not_awaited()

    async def test_duplicate_key_race(
        self, repository: UserRepository, collection: MockType
    ) -> None:
        """Test a concurrent insert caught by the unique index is a conflict."""
        collection.insert_one.side_effect = DuplicateKeyError("E11000")

        with pytest.raises(ConflictError) as exc_info:
            await repository.create(
                {"name": "Test", "email": "t@example.com", "age": 25}
            )
        assert isinstance(exc_info.value.__cause__, DuplicateKeyError)

    async def test_insert_driver_error(
        self, repository: UserRepository, collection: MockType
    ) -> None:
        """Test other write failures become server errors."""
        collection.insert_one.side_effect = AutoReconnect("gone")

        with pytest.raises(ServerError) as exc_info:
            await repository.create(
                {"name": "Test", "email": "t@example.com", "age": 25}
            )
        assert exc_info.value.context == {"operation": "create"}
