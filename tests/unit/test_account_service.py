from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from terminator_quiz.application.ports.account_repository_port import (
    AccountNotFoundError,
    AccountRecord,
    DuplicateUsernameError,
    StoreUnavailableError,
)
from terminator_quiz.application.ports.password_hasher_port import HashingFailureError
from terminator_quiz.application.services.account_service import (
    AccountService,
    InvalidUsernameError,
    PasswordMismatchError,
    UsernameTakenError,
    WeakPasswordError,
    retry_stage_for,
)
from terminator_quiz.domain.auth.errors import ChangePasswordError, RegistrationError
from terminator_quiz.domain.auth.password_policy import PolicyViolation
from terminator_quiz.domain.auth.registration_stage import RegistrationStage

STRONG = "Abcdefghi1!"
NEW_STRONG = "Newpassw0rd!"


@dataclass
class FakeAccountRepository:
    accounts: dict[str, AccountRecord] = field(default_factory=dict)
    insert_calls: list[str] = field(default_factory=list)
    update_calls: list[tuple[str, str]] = field(default_factory=list)
    race_winner_hash: str | None = None
    unavailable: bool = False

    async def exists(self, *, username: str) -> bool:
        self._check_available()
        return username in self.accounts

    async def insert(self, *, username: str, credential_hash: str) -> AccountRecord:
        self._check_available()
        self.insert_calls.append(username)
        if self.race_winner_hash is not None:
            self.accounts[username] = AccountRecord(
                username=username,
                credential_hash=self.race_winner_hash,
            )
        if username in self.accounts:
            raise DuplicateUsernameError(username=username)
        account = AccountRecord(username=username, credential_hash=credential_hash)
        self.accounts[username] = account
        return account

    async def fetch(self, *, username: str) -> AccountRecord | None:
        self._check_available()
        return self.accounts.get(username)

    async def update_credential(self, *, username: str, credential_hash: str) -> None:
        self._check_available()
        self.update_calls.append((username, credential_hash))
        if username not in self.accounts:
            raise AccountNotFoundError(username=username)
        self.accounts[username] = AccountRecord(username=username, credential_hash=credential_hash)

    def _check_available(self) -> None:
        if self.unavailable:
            raise StoreUnavailableError("account store failed")


class FakePasswordHasher:
    def __init__(self, *, fail: bool = False) -> None:
        self.hash_calls: list[str] = []
        self._fail = fail

    def hash_password(self, password: str) -> str:
        self.hash_calls.append(password)
        if self._fail:
            raise HashingFailureError("unable to hash password")
        return f"hashed::{password}"

    def verify_password(self, *, password: str, password_hash: str) -> bool:
        return password_hash == f"hashed::{password}"


def _service(
    accounts: FakeAccountRepository | None = None,
    password_hasher: FakePasswordHasher | None = None,
) -> AccountService:
    return AccountService(
        accounts=accounts or FakeAccountRepository(),
        password_hasher=password_hasher or FakePasswordHasher(),
    )


@pytest.mark.asyncio
async def test_register_hashes_password_and_persists_account() -> None:
    accounts = FakeAccountRepository()
    password_hasher = FakePasswordHasher()
    service = _service(accounts, password_hasher)

    created = await service.register(username="alice", password=STRONG)

    assert created.username == "alice"
    assert created.credential_hash == f"hashed::{STRONG}"
    assert accounts.accounts["alice"] == created
    assert password_hasher.hash_calls == [STRONG]


@pytest.mark.asyncio
async def test_register_trims_username_but_keeps_case() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts)

    created = await service.register(username="  Alice ", password=STRONG)

    assert created.username == "Alice"
    assert list(accounts.accounts) == ["Alice"]


@pytest.mark.asyncio
async def test_usernames_are_case_sensitive() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts)

    await service.register(username="alice", password=STRONG)
    await service.register(username="Alice", password=STRONG)

    assert set(accounts.accounts) == {"alice", "Alice"}


@pytest.mark.asyncio
@pytest.mark.parametrize("username", ["", "   "])
async def test_register_rejects_blank_username(username: str) -> None:
    accounts = FakeAccountRepository()
    password_hasher = FakePasswordHasher()
    service = _service(accounts, password_hasher)

    with pytest.raises(InvalidUsernameError):
        await service.register(username=username, password=STRONG)

    assert accounts.insert_calls == []
    assert password_hasher.hash_calls == []


@pytest.mark.asyncio
async def test_register_same_username_twice_raises_username_taken() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts)

    await service.register(username="alice", password=STRONG)
    with pytest.raises(UsernameTakenError):
        await service.register(username="alice", password=NEW_STRONG)

    assert list(accounts.accounts) == ["alice"]
    assert accounts.accounts["alice"].credential_hash == f"hashed::{STRONG}"


@pytest.mark.asyncio
async def test_register_weak_password_reports_every_unmet_rule() -> None:
    accounts = FakeAccountRepository()
    password_hasher = FakePasswordHasher()
    service = _service(accounts, password_hasher)

    with pytest.raises(WeakPasswordError) as exc_info:
        await service.register(username="alice", password="abc")

    assert exc_info.value.violations == frozenset(
        {
            PolicyViolation.TOO_SHORT,
            PolicyViolation.NO_UPPERCASE,
            PolicyViolation.NO_DIGIT,
            PolicyViolation.NO_SPECIAL_CHAR,
        }
    )
    assert password_hasher.hash_calls == []
    assert accounts.accounts == {}


@pytest.mark.asyncio
async def test_register_propagates_hashing_failure_without_insert() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts, FakePasswordHasher(fail=True))

    with pytest.raises(HashingFailureError):
        await service.register(username="alice", password=STRONG)

    assert accounts.insert_calls == []


@pytest.mark.asyncio
async def test_register_lost_insert_race_surfaces_username_taken_without_retry() -> None:
    accounts = FakeAccountRepository(race_winner_hash="hashed::someone-else")
    password_hasher = FakePasswordHasher()
    service = _service(accounts, password_hasher)

    with pytest.raises(UsernameTakenError) as exc_info:
        await service.register(username="alice", password=STRONG)

    assert isinstance(exc_info.value.__cause__, DuplicateUsernameError)
    assert accounts.insert_calls == ["alice"]
    assert password_hasher.hash_calls == [STRONG]
    assert accounts.accounts["alice"].credential_hash == "hashed::someone-else"


@pytest.mark.asyncio
async def test_register_propagates_store_unavailable() -> None:
    service = _service(FakeAccountRepository(unavailable=True))

    with pytest.raises(StoreUnavailableError):
        await service.register(username="alice", password=STRONG)


@pytest.mark.asyncio
async def test_authenticate_returns_account_on_matching_password() -> None:
    service = _service()
    created = await service.register(username="alice", password=STRONG)

    account = await service.authenticate(username="alice", password=STRONG)

    assert account == created


@pytest.mark.asyncio
async def test_authenticate_unknown_user_and_wrong_password_are_indistinguishable() -> None:
    service = _service()
    await service.register(username="alice", password=STRONG)

    wrong_password = await service.authenticate(username="alice", password="wrong")
    unknown_user = await service.authenticate(username="ghost", password="anything")

    assert wrong_password is None
    assert unknown_user is None


@pytest.mark.asyncio
async def test_lookups_normalize_username_like_register() -> None:
    service = _service()
    created = await service.register(username="  alice ", password=STRONG)

    assert await service.username_exists(username=" alice  ") is True
    assert await service.authenticate(username="\talice ", password=STRONG) == created


@pytest.mark.asyncio
@pytest.mark.parametrize("username", ["", "   ", "\t\n"])
async def test_blank_username_lookups_match_no_account(username: str) -> None:
    accounts = FakeAccountRepository(
        accounts={"": AccountRecord(username="", credential_hash=f"hashed::{STRONG}")}
    )
    service = _service(accounts)

    assert await service.username_exists(username=username) is False
    assert await service.authenticate(username=username, password=STRONG) is None


@pytest.mark.asyncio
async def test_change_password_replaces_hash_and_old_password_stops_working() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts)
    account = await service.register(username="alice", password=STRONG)

    await service.change_password(
        account=account,
        current_password=STRONG,
        new_password=NEW_STRONG,
    )

    assert accounts.update_calls == [("alice", f"hashed::{NEW_STRONG}")]
    assert await service.authenticate(username="alice", password=NEW_STRONG) is not None
    assert await service.authenticate(username="alice", password=STRONG) is None


@pytest.mark.asyncio
async def test_change_password_rejects_wrong_current_password() -> None:
    accounts = FakeAccountRepository()
    password_hasher = FakePasswordHasher()
    service = _service(accounts, password_hasher)
    account = await service.register(username="alice", password=STRONG)

    with pytest.raises(PasswordMismatchError):
        await service.change_password(
            account=account,
            current_password="not-it",
            new_password=NEW_STRONG,
        )

    assert accounts.update_calls == []
    assert password_hasher.hash_calls == [STRONG]


@pytest.mark.asyncio
async def test_change_password_rejects_weak_new_password() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts)
    account = await service.register(username="alice", password=STRONG)

    with pytest.raises(WeakPasswordError) as exc_info:
        await service.change_password(
            account=account,
            current_password=STRONG,
            new_password="newpassword",
        )

    assert exc_info.value.violations == {
        PolicyViolation.NO_UPPERCASE,
        PolicyViolation.NO_DIGIT,
        PolicyViolation.NO_SPECIAL_CHAR,
    }
    assert accounts.update_calls == []


@pytest.mark.asyncio
async def test_change_password_verifies_against_latest_stored_hash() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts)
    stale = await service.register(username="alice", password=STRONG)
    await service.change_password(account=stale, current_password=STRONG, new_password=NEW_STRONG)

    with pytest.raises(PasswordMismatchError):
        await service.change_password(
            account=stale,
            current_password=STRONG,
            new_password="Another0ne!!",
        )


@pytest.mark.asyncio
async def test_change_password_for_missing_account_raises_not_found() -> None:
    service = _service()
    ghost = AccountRecord(username="ghost", credential_hash=f"hashed::{STRONG}")

    with pytest.raises(AccountNotFoundError):
        await service.change_password(
            account=ghost,
            current_password=STRONG,
            new_password=NEW_STRONG,
        )


@pytest.mark.asyncio
async def test_change_password_propagates_store_unavailable() -> None:
    accounts = FakeAccountRepository()
    service = _service(accounts)
    account = await service.register(username="alice", password=STRONG)
    accounts.unavailable = True

    with pytest.raises(StoreUnavailableError):
        await service.change_password(
            account=account,
            current_password=STRONG,
            new_password=NEW_STRONG,
        )


def test_policy_violations_is_exposed_for_feedback() -> None:
    assert _service().policy_violations("Ab1!") == {PolicyViolation.TOO_SHORT}


def test_account_repr_hides_credential_hash() -> None:
    account = AccountRecord(username="alice", credential_hash="hashed::secret")

    assert "hashed::secret" not in repr(account)


def test_error_families_cover_each_operation() -> None:
    assert issubclass(WeakPasswordError, RegistrationError)
    assert issubclass(WeakPasswordError, ChangePasswordError)
    assert issubclass(StoreUnavailableError, RegistrationError)
    assert issubclass(StoreUnavailableError, ChangePasswordError)
    assert issubclass(HashingFailureError, RegistrationError)
    assert issubclass(AccountNotFoundError, ChangePasswordError)
    assert issubclass(PasswordMismatchError, ChangePasswordError)
    assert not issubclass(UsernameTakenError, ChangePasswordError)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (InvalidUsernameError(), RegistrationStage.COLLECTING_USERNAME),
        (UsernameTakenError(username="alice"), RegistrationStage.COLLECTING_USERNAME),
        (
            WeakPasswordError(violations={PolicyViolation.NO_DIGIT}),
            RegistrationStage.COLLECTING_PASSWORD,
        ),
        (StoreUnavailableError("down"), None),
        (HashingFailureError("no entropy"), None),
    ],
)
def test_retry_stage_for_maps_errors_to_collection_stage(
    error: RegistrationError,
    expected: RegistrationStage | None,
) -> None:
    assert retry_stage_for(error) is expected
