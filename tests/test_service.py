"""
Tests for the message operations and storage layer, without HTTP.

Tests cover:
- The authorization decision table for get and mark-read
- Foreign key violations surfacing as typed results
- Idempotent read marking
"""

import pytest
from sqlalchemy.exc import IntegrityError

from app import service, storage
from app.auth import CurrentUser


ALICE = CurrentUser("alice")
BOB = CurrentUser("bob")
CAROL = CurrentUser("carol")


@pytest.fixture
def users(db):
    for username in ("alice", "bob", "carol"):
        storage.create_user(
            db,
            username=username,
            password="password",
            first_name=username.title(),
            last_name="Test",
            phone="+10000000000",
        )


@pytest.fixture
def message(db, users):
    """A message from alice to bob."""
    return storage.create_message(db, from_username="alice", to_username="bob", body="hi")


class TestGetMessage:

    @pytest.mark.parametrize("caller,expected", [
        (ALICE, service.Ok),
        (BOB, service.Ok),
        (CAROL, service.Unauthorized),
    ])
    def test_decision_table(self, db, message, caller, expected):
        result = service.get_message(db, caller, message.id)

        assert isinstance(result, expected)

    def test_ok_carries_message_with_users(self, db, message):
        result = service.get_message(db, BOB, message.id)

        assert result.value.id == message.id
        assert result.value.from_user.username == "alice"
        assert result.value.to_user.first_name == "Bob"

    def test_unauthorized_message(self, db, message):
        result = service.get_message(db, CAROL, message.id)

        assert result == service.Unauthorized("Unauthorized. This is not your message.")
        assert result.status == 401

    def test_not_found(self, db, users):
        result = service.get_message(db, ALICE, 42)

        assert result == service.NotFound("No such message: 42")
        assert result.status == 404


class TestSendMessage:

    def test_ok(self, db, users):
        result = service.send_message(db, ALICE, "bob", "hello")

        assert isinstance(result, service.Ok)
        assert result.value.from_username == "alice"
        assert result.value.sent_at is not None
        assert result.value.read_at is None

    def test_unknown_recipient(self, db, users):
        result = service.send_message(db, ALICE, "nobody", "hello")

        assert result == service.RecipientNotFound("nobody")
        assert result.message == "Cannot send message. User 'nobody' not found."
        assert result.status == 400


class TestMarkRead:

    @pytest.mark.parametrize("caller,expected", [
        (ALICE, service.Unauthorized),
        (BOB, service.Ok),
        (CAROL, service.Unauthorized),
    ])
    def test_decision_table(self, db, message, caller, expected):
        result = service.mark_read(db, caller, message.id)

        assert isinstance(result, expected)

    def test_unauthorized_leaves_message_unread(self, db, message):
        result = service.mark_read(db, ALICE, message.id)

        assert result.message == "Unauthorized. You are not the recipient of this message."
        assert storage.get_message(db, message.id).read_at is None

    def test_second_mark_is_noop(self, db, message):
        first = service.mark_read(db, BOB, message.id)
        read_at = first.value.read_at
        second = service.mark_read(db, BOB, message.id)

        assert isinstance(second, service.Ok)
        assert second.value.read_at == read_at

    def test_not_found(self, db, users):
        assert isinstance(service.mark_read(db, BOB, 42), service.NotFound)


class TestStorage:

    def test_create_message_reports_missing_recipient(self, db, users):
        result = storage.create_message(db, from_username="alice", to_username="ghost", body="boo")

        assert result == storage.ForeignKeyViolation(field="to_username", value="ghost")

    def test_create_message_reports_missing_sender(self, db, users):
        result = storage.create_message(db, from_username="ghost", to_username="bob", body="boo")

        assert result == storage.ForeignKeyViolation(field="from_username", value="ghost")

    def test_session_usable_after_violation(self, db, users):
        storage.create_message(db, from_username="alice", to_username="ghost", body="boo")
        created = storage.create_message(db, from_username="alice", to_username="bob", body="ok")

        assert created.id is not None

    def test_mark_read_missing(self, db, users):
        assert storage.mark_read(db, 42) is None

    @pytest.mark.parametrize("message_id", [0, -1, 2 ** 63, 10 ** 30])
    def test_out_of_range_id_is_missing(self, db, users, message_id):
        assert storage.get_message(db, message_id) is None
        assert storage.mark_read(db, message_id) is None

    def test_other_integrity_errors_propagate(self, db, users):
        """Only foreign key failures become ForeignKeyViolation; NOT NULL is re-raised."""
        with pytest.raises(IntegrityError):
            storage.create_message(db, from_username="alice", to_username="bob", body=None)

    def test_other_integrity_errors_propagate_from_service(self, db, users):
        with pytest.raises(IntegrityError):
            service.send_message(db, ALICE, "bob", None)

    def test_duplicate_username(self, db, users):
        assert storage.create_user(
            db,
            username="alice",
            password="other",
            first_name="Other",
            last_name="Alice",
            phone="+10000000001",
        ) is None

    def test_password_is_hashed(self, db, users):
        assert storage.get_user(db, "alice").password != "password"

    def test_authenticate_user(self, db, users):
        assert storage.authenticate_user(db, "alice", "password").username == "alice"
        assert storage.authenticate_user(db, "alice", "wrong") is None
        assert storage.authenticate_user(db, "ghost", "password") is None
