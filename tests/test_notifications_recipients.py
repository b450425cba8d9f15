"""Unit tests for recipient resolution."""

import logging
from unittest.mock import Mock

import pytest

from helpdesk_notify.domain.models import LifecycleEvent
from helpdesk_notify.notifications.recipients import RecipientResolver
from helpdesk_notify.persistence import PersistenceError
from tests.helpers import StaticDirectory, StaticPolicyStore, make_ticket, make_user


@pytest.fixture
def resolver():
    """Resolver over the default matrix and seed users."""
    return RecipientResolver(policy_store=StaticPolicyStore(), directory=StaticDirectory())


class TestScenarios:
    """The documented "Printer down" and status round-trip scenarios."""

    def test_opened_unassigned(self, resolver):
        """Test opened notifies creator, staff roles and super users."""
        ticket = make_ticket(creator="jane", assignee=None)

        emails = resolver.resolve(LifecycleEvent.OPENED, ticket)

        assert emails == {"jane@x", "bob@x", "mia@x", "al@x", "su@x"}

    def test_assigned_to_display_name(self, resolver):
        """Test assigned resolves the assignee by display name."""
        ticket = make_ticket(assignee="Bob Smith")

        emails = resolver.resolve(LifecycleEvent.ASSIGNED, ticket)

        assert emails == {"bob@x", "mia@x", "al@x", "su@x"}

    def test_closed_reaches_everyone(self, resolver):
        """Test closed notifies every class."""
        ticket = make_ticket(status="Closed", assignee="bob")

        emails = resolver.resolve("closed", ticket)

        assert emails == {"jane@x", "bob@x", "mia@x", "al@x", "su@x"}

    def test_commented_only_creator_and_assignee(self, resolver):
        """Test comments go to the creator and assignee only."""
        ticket = make_ticket(assignee="bob")

        assert resolver.resolve(LifecycleEvent.COMMENTED, ticket) == {"jane@x", "bob@x"}


class TestResolutionRules:
    """Edge cases of recipient resolution."""

    def test_creator_equal_to_assignee_is_deduplicated(self, resolver):
        """Test one person in two classes is addressed once."""
        ticket = make_ticket(creator="bob", assignee="Bob Smith")

        assert resolver.resolve(LifecycleEvent.COMMENTED, ticket) == {"bob@x"}

    def test_missing_assignee_skipped(self, resolver):
        """Test an unassigned ticket contributes no assignee."""
        ticket = make_ticket(creator="jane", assignee=None)

        assert resolver.resolve(LifecycleEvent.COMMENTED, ticket) == {"jane@x"}

    def test_unknown_creator_skipped(self, resolver):
        """Test an unresolvable creator is silently absent."""
        ticket = make_ticket(creator="Former Employee", assignee="bob")

        assert resolver.resolve(LifecycleEvent.COMMENTED, ticket) == {"bob@x"}

    def test_user_without_email_skipped(self):
        """Test a resolved user with no address adds nothing."""
        directory = StaticDirectory([make_user("jane", email="  ")])
        resolver = RecipientResolver(StaticPolicyStore(), directory)

        assert resolver.resolve(LifecycleEvent.COMMENTED, make_ticket(creator="jane")) == set()

    def test_unknown_event_resolves_to_nobody(self, resolver):
        """Test events missing from the matrix have no recipients."""
        assert resolver.resolve("escalated", make_ticket()) == set()

    def test_all_flags_false(self):
        """Test an event switched off entirely has no recipients."""
        matrix = StaticPolicyStore().matrix
        matrix["opened"] = {key: False for key in matrix["opened"]}
        resolver = RecipientResolver(StaticPolicyStore(matrix=matrix), StaticDirectory())

        assert resolver.resolve(LifecycleEvent.OPENED, make_ticket()) == set()

    def test_no_role_flags_means_no_role_query(self):
        """Test super users are not added when no role class is targeted."""
        directory = Mock(wraps=StaticDirectory())
        resolver = RecipientResolver(StaticPolicyStore(), directory)

        emails = resolver.resolve(LifecycleEvent.COMMENTED, make_ticket(creator="jane"))

        assert emails == {"jane@x"}
        directory.emails_for_roles.assert_not_called()

    def test_role_flags_map_to_role_names(self):
        """Test only the flagged classes are queried as roles."""
        directory = Mock()
        directory.resolve_by_name_or_username.return_value = None
        directory.emails_for_roles.return_value = {" mgr@x ", ""}
        resolver = RecipientResolver(StaticPolicyStore(), directory)

        emails = resolver.resolve(LifecycleEvent.ASSIGNED, make_ticket(assignee="bob"))

        directory.emails_for_roles.assert_called_once_with({"Manager", "Admin"})
        assert emails == {"mgr@x"}

    def test_emails_are_case_sensitive(self):
        """Test addresses differing only in case are both kept."""
        directory = StaticDirectory([
            make_user("jane", email="Jane@X"),
            make_user("al", "Admin", email="jane@x"),
        ])
        resolver = RecipientResolver(StaticPolicyStore(), directory)

        emails = resolver.resolve(LifecycleEvent.OPENED, make_ticket(creator="jane"))

        assert emails == {"Jane@X", "jane@x"}


class TestLookupFailures:
    """Lookup errors drop recipients instead of failing resolution."""

    def test_user_lookup_error_keeps_role_recipients(self, caplog):
        """Test a failing user lookup still returns role recipients."""
        directory = Mock()
        directory.resolve_by_name_or_username.side_effect = PersistenceError("offline")
        directory.emails_for_roles.return_value = {"al@x"}
        resolver = RecipientResolver(StaticPolicyStore(), directory)

        with caplog.at_level(logging.WARNING):
            emails = resolver.resolve(LifecycleEvent.OPENED, make_ticket())

        assert emails == {"al@x"}
        assert any(
            getattr(r, "event", None) == "notification.recipients.lookup_failed"
            for r in caplog.records
        )

    def test_role_lookup_error_keeps_named_recipients(self):
        """Test a failing role query still returns creator and assignee."""
        directory = Mock(wraps=StaticDirectory())
        directory.emails_for_roles.side_effect = PersistenceError("offline")
        resolver = RecipientResolver(StaticPolicyStore(), directory)

        emails = resolver.resolve(LifecycleEvent.CLOSED, make_ticket(assignee="bob"))

        assert emails == {"jane@x", "bob@x"}
