"""Unit tests for persistence layer."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from helpdesk_notify.persistence import (
    DatabaseConnectionError,
    DataIntegrityError,
    NotificationSettingsRepository,
    PersistenceError,
    UserRepository,
    close_database,
    get_session,
    init_database,
)
from helpdesk_notify.persistence.database import _redact_url
from tests.helpers import make_user, seed_users


@pytest.fixture
def database(tmp_path):
    """Initialize a file-backed SQLite database for one test."""
    db_file = tmp_path / "test.db"
    init_database(f"sqlite:///{db_file}")
    yield db_file
    close_database()


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_success(self, tmp_path):
        """Test successful database initialization."""
        db_file = tmp_path / "test.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        with get_session() as session:
            assert session is not None

        close_database()

    def test_init_database_creates_parent_directories(self, tmp_path):
        """Test initialization creates parent directories if missing."""
        db_file = tmp_path / "subdir" / "nested" / "test.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        close_database()

    def test_init_database_invalid_url_raises_error(self):
        """Test initialization with invalid URL raises DatabaseConnectionError."""
        with pytest.raises(DatabaseConnectionError):
            init_database("")

        with pytest.raises(DatabaseConnectionError):
            init_database(None)

    def test_schema_creation_is_idempotent(self, tmp_path):
        """Test the database can be initialized twice against one file."""
        db_url = f"sqlite:///{tmp_path / 'test.db'}"

        init_database(db_url)
        close_database()
        init_database(db_url)

        with get_session() as session:
            assert UserRepository(session).get_all() == []
        close_database()

    def test_get_session_before_init_raises(self):
        """Test sessions cannot be opened before initialization."""
        close_database()

        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass

    def test_session_rolls_back_on_error(self, database):
        """Test an exception inside the session discards its writes."""
        with pytest.raises(RuntimeError):
            with get_session() as session:
                UserRepository(session).upsert(make_user("ghost"))
                raise RuntimeError("boom")

        with get_session() as session:
            assert UserRepository(session).get_by_username("ghost") is None

    def test_commit_failure_becomes_persistence_error(self, database):
        """Test a SQLAlchemy error raised on commit is wrapped and rolled back."""
        locked = OperationalError("COMMIT", {}, Exception("database is locked"))

        with patch.object(Session, "commit", side_effect=locked):
            with pytest.raises(PersistenceError, match="database is locked"):
                with get_session() as session:
                    UserRepository(session).upsert(make_user("ghost"))

        with get_session() as session:
            assert UserRepository(session).get_by_username("ghost") is None

    def test_redact_url_hides_password(self):
        """Test credentials are masked in logged URLs."""
        assert (
            _redact_url("postgresql://svc:hunter2@db:5432/helpdesk")
            == "postgresql://svc:***@db:5432/helpdesk"
        )
        assert _redact_url("sqlite:///./data/helpdesk.db") == "sqlite:///./data/helpdesk.db"


class TestUserRepository:
    """Tests for UserRepository."""

    def test_upsert_and_get_by_username(self, database):
        """Test users can be stored and looked up by username."""
        seed_users()

        with get_session() as session:
            user = UserRepository(session).get_by_username("bob")

        assert user is not None
        assert user.role == "Technician"
        assert user.display_name == "Bob Smith"

    def test_get_by_username_is_case_sensitive(self, database):
        """Test username lookup is exact."""
        seed_users()

        with get_session() as session:
            assert UserRepository(session).get_by_username("BOB") is None

    def test_upsert_updates_existing_user(self, database):
        """Test upserting an existing id updates it in place."""
        seed_users([make_user("bob", "Technician", email="old@x")])
        seed_users([make_user("bob", "Manager", email="new@x")])

        with get_session() as session:
            users = UserRepository(session).get_all()

        assert len(users) == 1
        assert users[0].role == "Manager"
        assert users[0].email == "new@x"

    def test_upsert_duplicate_username_raises(self, database):
        """Test a second user with a taken username is rejected."""
        seed_users([make_user("bob")])

        with pytest.raises(DataIntegrityError):
            seed_users([make_user("bob", id="other-id")])

    def test_find_by_display_name(self, database):
        """Test display-name lookup trims input and matches exactly."""
        seed_users()

        with get_session() as session:
            repo = UserRepository(session)
            assert repo.find_by_display_name("  Bob Smith ").username == "bob"
            assert repo.find_by_display_name("bob smith") is None
            assert repo.find_by_display_name("") is None

    def test_find_by_display_name_ignores_nameless_users(self, database):
        """Test users without name parts are not matched by username here."""
        seed_users([make_user("mia", "Manager")])

        with get_session() as session:
            assert UserRepository(session).find_by_display_name("mia") is None

    def test_find_by_display_name_first_match_wins(self, database):
        """Test duplicate display names resolve to the first user by id."""
        seed_users([
            make_user("b2", first_name="Bob", last_name="Smith", id="2"),
            make_user("b1", first_name="Bob", last_name="Smith", id="1"),
        ])

        with get_session() as session:
            assert UserRepository(session).find_by_display_name("Bob Smith").username == "b1"

    def test_find_by_display_name_trims_stored_parts(self, database):
        """Test padded or single name parts match like the computed display name."""
        seed_users([
            make_user("ann", first_name="  Ann ", last_name=" Lee  "),
            make_user("cher", first_name="Cher", last_name=None),
            make_user("kai", first_name="   ", last_name="Kai"),
        ])

        with get_session() as session:
            repo = UserRepository(session)
            assert repo.find_by_display_name("Ann Lee").username == "ann"
            assert repo.find_by_display_name("Cher").username == "cher"
            assert repo.find_by_display_name("Kai").username == "kai"
            assert repo.find_by_display_name("Cher ").username == "cher"
            assert repo.find_by_display_name("Ann  Lee") is None

    def test_list_by_roles_includes_super_users(self, database):
        """Test role listing adds super users regardless of their role."""
        seed_users()

        with get_session() as session:
            users = UserRepository(session).list_by_roles({"Admin"})

        assert [u.username for u in users] == ["al", "su"]

    def test_list_by_roles_empty_set(self, database):
        """Test an empty role set returns nobody, not even super users."""
        seed_users()

        with get_session() as session:
            assert UserRepository(session).list_by_roles(set()) == []


class TestNotificationSettingsRepository:
    """Tests for NotificationSettingsRepository."""

    def test_get_returns_none_when_missing(self, database):
        """Test the settings row does not exist until created."""
        with get_session() as session:
            assert NotificationSettingsRepository(session).get() is None

    def test_ensure_defaults_inserts_once(self, database):
        """Test the defaults are only written when the row is missing."""
        with get_session() as session:
            repo = NotificationSettingsRepository(session)
            first = repo.ensure_defaults({"opened": {"creator": True}}, {})

        with get_session() as session:
            repo = NotificationSettingsRepository(session)
            second = repo.ensure_defaults({"opened": {"creator": False}}, {})

        assert json.loads(first.matrix_json) == {"opened": {"creator": True}}
        assert second.matrix_json == first.matrix_json

    def test_replace_matrix_records_audit_fields(self, database):
        """Test replacement stores the document, time and actor."""
        when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        with get_session() as session:
            NotificationSettingsRepository(session).replace_matrix(
                {"closed": {"admin": False}}, updated_at=when, updated_by="al"
            )

        with get_session() as session:
            record = NotificationSettingsRepository(session).get()

        assert json.loads(record.matrix_json) == {"closed": {"admin": False}}
        assert record.templates_json is None
        assert record.updated_at == when
        assert record.updated_by == "al"

    def test_replace_templates_keeps_matrix(self, database):
        """Test replacing one document leaves the other untouched."""
        now = datetime.now(timezone.utc)

        with get_session() as session:
            repo = NotificationSettingsRepository(session)
            repo.replace_matrix({"opened": {"admin": True}}, updated_at=now)
            repo.replace_templates({"opened": {"subject": "Hi"}}, updated_at=now)

        with get_session() as session:
            record = NotificationSettingsRepository(session).get()

        assert json.loads(record.matrix_json) == {"opened": {"admin": True}}
        assert json.loads(record.templates_json) == {"opened": {"subject": "Hi"}}
