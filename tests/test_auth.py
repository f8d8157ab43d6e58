from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from rangegame.accounts import AccountService, new_subject
from rangegame.api.auth import (
    check_pin_format,
    create_token,
    decode_subject,
    hash_pin,
    verify_pin,
)
from rangegame.errors import AuthError, UserExistsError
from rangegame.models.user import AuthProvider, User
from rangegame.registry.queries import Registry

SECRET = "test-secret"


class TestPinHashing:
    def test_round_trip(self) -> None:
        hashed = hash_pin("1234")
        assert hashed != "1234"
        assert verify_pin("1234", hashed)
        assert not verify_pin("4321", hashed)

    def test_missing_hash_never_matches(self) -> None:
        assert not verify_pin("1234", None)
        assert not verify_pin("1234", "")

    @pytest.mark.parametrize("pin", ["123", "12345", "abcd", "", "12a4"])
    def test_rejects_non_four_digit(self, pin: str) -> None:
        with pytest.raises(AuthError, match="4 digits"):
            check_pin_format(pin)


class TestTokens:
    def test_subject_round_trip(self) -> None:
        token = create_token("user_chris_1", SECRET, expiry_hours=1)
        assert decode_subject(token, SECRET) == "user_chris_1"

    def test_wrong_secret(self) -> None:
        token = create_token("user_chris_1", SECRET, expiry_hours=1)
        assert decode_subject(token, "other") is None

    def test_expired(self) -> None:
        token = create_token("user_chris_1", SECRET, expiry_hours=-1)
        assert decode_subject(token, SECRET) is None

    def test_garbage(self) -> None:
        assert decode_subject("not-a-jwt", SECRET) is None


@pytest.fixture
def registry() -> MagicMock:
    reg = MagicMock(spec=Registry)
    reg.create_user.side_effect = lambda u: u
    reg.get_user_by_username.return_value = None
    reg.find_twitter_user.return_value = None
    return reg


@pytest.fixture
def accounts(registry: MagicMock) -> AccountService:
    return AccountService(registry)


class TestAccountService:
    def test_new_subject_slug(self) -> None:
        assert new_subject("Chris R!").startswith("user_chrisr_")

    def test_register_hashes_pin(self, accounts: AccountService, registry: MagicMock) -> None:
        user = accounts.register("Chris", "chris@example.com", "1234")
        assert user.password_hash != "1234"
        assert verify_pin("1234", user.password_hash)
        assert user.subject.startswith("user_chris_")

    def test_register_bad_pin(self, accounts: AccountService, registry: MagicMock) -> None:
        with pytest.raises(AuthError):
            accounts.register("Chris", "chris@example.com", "12")
        registry.create_user.assert_not_called()

    def test_login(self, accounts: AccountService, registry: MagicMock) -> None:
        registry.get_user_by_username.return_value = User(
            subject="s1", username="Chris", password_hash=hash_pin("1234"),
        )
        assert accounts.login("Chris", "1234").subject == "s1"
        registry.touch_login.assert_called_once_with("s1")

    def test_login_wrong_pin(self, accounts: AccountService, registry: MagicMock) -> None:
        registry.get_user_by_username.return_value = User(
            subject="s1", username="Chris", password_hash=hash_pin("1234"),
        )
        with pytest.raises(AuthError, match="Incorrect password"):
            accounts.login("Chris", "9999")

    def test_login_unknown_user(self, accounts: AccountService) -> None:
        with pytest.raises(AuthError, match="No account found"):
            accounts.login("ghost", "1234")

    def test_guest_creates_user(self, accounts: AccountService, registry: MagicMock) -> None:
        user = accounts.guest_login("Dana")
        assert user.password_hash is None
        assert user.provider == AuthProvider.GUEST

    def test_guest_reuses_passwordless_user(
        self, accounts: AccountService, registry: MagicMock,
    ) -> None:
        registry.get_user_by_username.return_value = User(subject="g1", username="Dana")
        assert accounts.guest_login("Dana").subject == "g1"
        registry.create_user.assert_not_called()

    def test_guest_cannot_take_pin_account(
        self, accounts: AccountService, registry: MagicMock,
    ) -> None:
        registry.get_user_by_username.return_value = User(
            subject="s1", username="Chris", password_hash=hash_pin("1234"),
        )
        with pytest.raises(UserExistsError):
            accounts.guest_login("Chris")

    def test_x_login_creates_profile(self, accounts: AccountService, registry: MagicMock) -> None:
        user = accounts.x_login("42", "eli", name="Eli", image="https://img")
        assert user.subject.startswith("x_user_42_")
        assert user.provider == AuthProvider.TWITTER

    def test_x_login_updates_existing(self, accounts: AccountService, registry: MagicMock) -> None:
        registry.find_twitter_user.return_value = User(
            subject="x1", username="eli", twitter_id="42", provider=AuthProvider.TWITTER,
        )
        assert accounts.x_login("42", "eli", name="Eli B").subject == "x1"
        registry.touch_login.assert_called_once_with("x1", name="Eli B", image=None)

    def test_x_login_username_owned_by_other_account(
        self, accounts: AccountService, registry: MagicMock,
    ) -> None:
        registry.find_twitter_user.return_value = User(
            subject="x9", username="eli", twitter_id="99", provider=AuthProvider.TWITTER,
        )
        with pytest.raises(UserExistsError):
            accounts.x_login("42", "eli")

    def test_reset_pin(self, accounts: AccountService, registry: MagicMock) -> None:
        registry.get_user_by_username.return_value = User(
            subject="s1", username="Chris", email="Chris@Example.com",
        )
        accounts.reset_pin("Chris", "chris@example.com", "5678")
        subject, new_hash = registry.update_password_hash.call_args.args
        assert subject == "s1"
        assert verify_pin("5678", new_hash)

    def test_reset_pin_email_mismatch(self, accounts: AccountService, registry: MagicMock) -> None:
        registry.get_user_by_username.return_value = User(
            subject="s1", username="Chris", email="chris@example.com",
        )
        with pytest.raises(AuthError):
            accounts.reset_pin("Chris", "other@example.com", "5678")
        registry.update_password_hash.assert_not_called()
