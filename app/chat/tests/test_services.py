"""
Tests for ChatRegistry.

This module tests:
- Individual chats: creation, reuse, self-chat rejection, pair uniqueness
- Group chats: creation rules and participant resolution
- Membership: add, remove, leave, admin succession, deactivation
- Metadata updates and group search
- Listing order and participation checks

Dependencies:
    - pytest for test framework
    - freezegun for ordering by updated_at
    - Synced service fixtures from the project conftest
"""

import pytest
from asgiref.sync import async_to_sync
from freezegun import freeze_time

from chat.documents import ChatType, ParticipantRole, pair_key
from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

UNKNOWN_ID = "000000000000000000000000"


# =============================================================================
# TestIndividualChats
# =============================================================================


class TestIndividualChats:
    """
    Tests for ChatRegistry.get_or_create_individual() / create_individual().

    Verifies:
    - Exactly two members, no admin, no name
    - The same active chat is returned for either ordering of the pair
    - A deactivated chat frees the pair
    """

    def test_create_individual(self, chat_registry, alice, bob):
        chat, created = chat_registry.get_or_create_individual(alice.id, bob.id)

        assert created is True
        assert chat.type == ChatType.INDIVIDUAL
        assert set(chat.participant_ids) == {alice.id, bob.id}
        assert all(p.role == ParticipantRole.MEMBER for p in chat.participants)
        assert chat.name == ""
        assert chat.is_active is True
        assert chat.created_by == alice.id

    def test_existing_chat_is_reused_in_either_order(self, chat_registry, alice, bob):
        """
        Why it matters: two people must never end up with two parallel
        1:1 conversations.
        """
        first = chat_registry.create_individual(alice.id, bob.id)

        again, created = chat_registry.get_or_create_individual(bob.id, alice.id)

        assert created is False
        assert again.id == first.id

    def test_self_chat_rejected(self, chat_registry, alice):
        with pytest.raises(ValidationError) as exc_info:
            chat_registry.create_individual(alice.id, alice.id)

        assert exc_info.value.error_code == "CANNOT_CHAT_WITH_SELF"

    def test_unknown_participant_raises_not_found(self, chat_registry, alice):
        with pytest.raises(NotFoundError) as exc_info:
            chat_registry.create_individual(alice.id, UNKNOWN_ID)

        assert exc_info.value.error_code == "USER_NOT_FOUND"

    def test_deactivated_pair_can_start_again(self, chat_registry, alice, bob):
        old = chat_registry.create_individual(alice.id, bob.id)
        chat_registry.deactivate(old.id)

        new, created = chat_registry.get_or_create_individual(alice.id, bob.id)

        assert created is True
        assert new.id != old.id

    def test_insert_race_returns_winner(self, chat_registry, document_store, alice, bob):
        """
        A concurrent creator that loses on the unique pair key gets the
        winner's chat instead of an error.
        """
        winner_id = "aaaaaaaaaaaaaaaaaaaaaaaa"
        original_find_one = document_store.find_one
        calls = {"n": 0}

        async def racing_find_one(collection, criteria=None, **kwargs):
            # Simulate the other request inserting between our check and insert
            if collection == "chats" and "pair_key" in (criteria or {}) and calls["n"] == 0:
                calls["n"] += 1
                await document_store.insert_one(
                    "chats",
                    {
                        "_id": winner_id,
                        "type": "individual",
                        "participants": [{"user": alice.id}, {"user": bob.id}],
                        "is_active": True,
                        "pair_key": pair_key(alice.id, bob.id),
                    },
                )
                return None
            return await original_find_one(collection, criteria, **kwargs)

        document_store.find_one = racing_find_one

        chat, created = chat_registry.get_or_create_individual(alice.id, bob.id)

        assert created is False
        assert chat.id == winner_id


# =============================================================================
# TestGroupChats
# =============================================================================


class TestGroupChats:
    """
    Tests for ChatRegistry.create_group().

    Verifies:
    - Creator is admin, others are members
    - Duplicate ids and the creator's own id are folded away
    - Name and participant requirements
    """

    def test_create_group(self, chat_registry, alice, bob, carol):
        chat = chat_registry.create_group(alice.id, " Weekend Trip ", [bob.id, carol.id], description="Beach")

        assert chat.type == ChatType.GROUP
        assert chat.name == "Weekend Trip"
        assert chat.description == "Beach"
        assert chat.is_admin(alice.id)
        assert chat.get_participant(bob.id).role == ParticipantRole.MEMBER
        assert len(chat.participants) == 3

    def test_duplicate_and_creator_ids_folded(self, chat_registry, alice, bob):
        chat = chat_registry.create_group(alice.id, "Pair", [bob.id, bob.id, alice.id])

        assert chat.participant_ids == [alice.id, bob.id]

    def test_blank_name_rejected(self, chat_registry, alice, bob):
        with pytest.raises(ValidationError) as exc_info:
            chat_registry.create_group(alice.id, "   ", [bob.id])

        assert exc_info.value.error_code == "GROUP_NAME_REQUIRED"

    def test_only_creator_rejected(self, chat_registry, alice):
        with pytest.raises(ValidationError) as exc_info:
            chat_registry.create_group(alice.id, "Solo", [alice.id])

        assert exc_info.value.error_code == "PARTICIPANTS_REQUIRED"

    def test_unknown_participant_named_in_error(self, chat_registry, alice, bob):
        with pytest.raises(NotFoundError) as exc_info:
            chat_registry.create_group(alice.id, "Team", [bob.id, UNKNOWN_ID])

        assert exc_info.value.details == {"user_id": UNKNOWN_ID}

    def test_groups_have_no_pair_key(self, chat_registry, document_store, alice, bob):
        """
        Why it matters: the pair index is sparse; groups must not occupy it.
        """
        chat_registry.create_group(alice.id, "One", [bob.id])
        chat_registry.create_group(alice.id, "Two", [bob.id])

        assert len(chat_registry.list_for_user(bob.id)) == 2


# =============================================================================
# TestMembership
# =============================================================================


class TestMembership:
    """
    Tests for add_participant / remove_participant.

    Verifies:
    - Admin-only additions and removals, self-removal for anyone
    - Conflict on duplicates, NotFound on absent targets
    - Admin succession and deactivation when empty
    - Individual chats reject membership changes
    """

    def test_admin_adds_member(self, chat_registry, group_chat, alice, dave):
        chat = chat_registry.add_participant(group_chat.id, alice.id, dave.id)

        assert chat.has_participant(dave.id)
        assert chat.get_participant(dave.id).role == ParticipantRole.MEMBER

    def test_admin_adds_admin(self, chat_registry, group_chat, alice, dave):
        chat = chat_registry.add_participant(group_chat.id, alice.id, dave.id, role="admin")

        assert chat.is_admin(dave.id)

    def test_invalid_role_rejected(self, chat_registry, group_chat, alice, dave):
        with pytest.raises(ValidationError) as exc_info:
            chat_registry.add_participant(group_chat.id, alice.id, dave.id, role="owner")

        assert exc_info.value.error_code == "INVALID_ROLE"

    def test_member_cannot_add(self, chat_registry, group_chat, bob, dave):
        with pytest.raises(PermissionDeniedError) as exc_info:
            chat_registry.add_participant(group_chat.id, bob.id, dave.id)

        assert exc_info.value.error_code == "NOT_CHAT_ADMIN"

    def test_duplicate_add_conflicts(self, chat_registry, group_chat, alice, bob):
        with pytest.raises(ConflictError) as exc_info:
            chat_registry.add_participant(group_chat.id, alice.id, bob.id)

        assert exc_info.value.error_code == "ALREADY_PARTICIPANT"

    def test_add_unknown_identity(self, chat_registry, group_chat, alice):
        with pytest.raises(NotFoundError):
            chat_registry.add_participant(group_chat.id, alice.id, UNKNOWN_ID)

    def test_add_to_unknown_chat(self, chat_registry, alice, dave):
        with pytest.raises(NotFoundError) as exc_info:
            chat_registry.add_participant(UNKNOWN_ID, alice.id, dave.id)

        assert exc_info.value.error_code == "CHAT_NOT_FOUND"

    def test_individual_chat_rejects_membership_changes(self, chat_registry, direct_chat, alice, carol):
        with pytest.raises(ValidationError) as exc_info:
            chat_registry.add_participant(direct_chat.id, alice.id, carol.id)

        assert exc_info.value.error_code == "NOT_A_GROUP"

    def test_admin_removes_member(self, chat_registry, group_chat, alice, bob):
        chat = chat_registry.remove_participant(group_chat.id, alice.id, bob.id)

        assert not chat.has_participant(bob.id)

    def test_member_cannot_remove_others(self, chat_registry, group_chat, bob, carol):
        with pytest.raises(PermissionDeniedError):
            chat_registry.remove_participant(group_chat.id, bob.id, carol.id)

    def test_member_removes_self(self, chat_registry, group_chat, bob):
        chat = chat_registry.remove_participant(group_chat.id, bob.id, bob.id)

        assert not chat.has_participant(bob.id)

    def test_remove_absent_participant(self, chat_registry, group_chat, alice, dave):
        with pytest.raises(NotFoundError) as exc_info:
            chat_registry.remove_participant(group_chat.id, alice.id, dave.id)

        assert exc_info.value.error_code == "PARTICIPANT_NOT_FOUND"

    def test_last_admin_leaving_promotes_longest_member(self, chat_registry, alice, bob, carol, dave):
        """
        Why it matters: a group without an admin could never be managed
        again.
        """
        with freeze_time("2026-01-01 10:00:00"):
            chat = chat_registry.create_group(alice.id, "Team", [bob.id])
        with freeze_time("2026-01-02 10:00:00"):
            chat_registry.add_participant(chat.id, alice.id, carol.id)
            chat_registry.add_participant(chat.id, alice.id, dave.id)

        chat = chat_registry.remove_participant(chat.id, alice.id, alice.id)

        assert chat.is_admin(bob.id)
        assert not chat.is_admin(carol.id)
        assert chat.is_active is True

    def test_no_promotion_while_another_admin_remains(self, chat_registry, group_chat, alice, bob, dave):
        chat_registry.add_participant(group_chat.id, alice.id, dave.id, role="admin")

        chat = chat_registry.remove_participant(group_chat.id, alice.id, alice.id)

        assert chat.is_admin(dave.id)
        assert not chat.is_admin(bob.id)

    def test_last_participant_leaving_deactivates(self, chat_registry, alice, bob):
        chat = chat_registry.create_group(alice.id, "Pair", [bob.id])
        chat_registry.remove_participant(chat.id, bob.id, bob.id)

        chat = chat_registry.remove_participant(chat.id, alice.id, alice.id)

        assert chat.participants == []
        assert chat.is_active is False


# =============================================================================
# TestMetadata
# =============================================================================


class TestMetadata:
    """
    Tests for update_metadata().

    Verifies admin-only partial updates of group name, description, avatar.
    """

    def test_admin_renames(self, chat_registry, group_chat, alice):
        chat = chat_registry.update_metadata(group_chat.id, alice.id, name=" Road Trip ")

        assert chat.name == "Road Trip"
        assert chat.description == group_chat.description

    def test_partial_update_keeps_other_fields(self, chat_registry, group_chat, alice):
        chat = chat_registry.update_metadata(group_chat.id, alice.id, avatar="https://cdn/x.png")

        assert chat.avatar == "https://cdn/x.png"
        assert chat.name == "Weekend Trip"

    def test_member_cannot_update(self, chat_registry, group_chat, bob):
        with pytest.raises(PermissionDeniedError):
            chat_registry.update_metadata(group_chat.id, bob.id, name="Mine now")

    def test_blank_name_rejected(self, chat_registry, group_chat, alice):
        with pytest.raises(ValidationError):
            chat_registry.update_metadata(group_chat.id, alice.id, name="  ")

    def test_individual_chat_has_no_metadata(self, chat_registry, direct_chat, alice):
        with pytest.raises(ValidationError):
            chat_registry.update_metadata(direct_chat.id, alice.id, name="Us")


# =============================================================================
# TestListingAndLookup
# =============================================================================


class TestListingAndLookup:
    """
    Tests for list_for_user, chat_ids_for, search_groups, get_for_participant
    and is_participant.
    """

    def test_list_orders_by_last_activity(self, chat_registry, message_store, alice, bob, carol):
        with freeze_time("2026-01-01 10:00:00"):
            first = chat_registry.create_individual(alice.id, bob.id)
        with freeze_time("2026-01-01 11:00:00"):
            second = chat_registry.create_individual(alice.id, carol.id)
        with freeze_time("2026-01-01 12:00:00"):
            message_store.send(first.id, bob.id, "bump")

        assert [chat.id for chat in chat_registry.list_for_user(alice.id)] == [first.id, second.id]

    def test_list_excludes_inactive(self, chat_registry, direct_chat, alice):
        chat_registry.deactivate(direct_chat.id)

        assert chat_registry.list_for_user(alice.id) == []
        assert chat_registry.chat_ids_for(alice.id) == [direct_chat.id]
        assert chat_registry.chat_ids_for(alice.id, active_only=True) == []

    def test_list_is_scoped_to_participant(self, chat_registry, direct_chat, carol):
        assert chat_registry.list_for_user(carol.id) == []

    def test_search_groups(self, chat_registry, group_chat, alice, bob):
        chat_registry.create_group(alice.id, "Book Club", [bob.id])
        chat_registry.create_individual(alice.id, bob.id)

        results = chat_registry.search_groups(bob.id, "trip")

        assert [chat.id for chat in results] == [group_chat.id]

    def test_search_groups_only_own(self, chat_registry, group_chat, dave):
        assert chat_registry.search_groups(dave.id, "trip") == []

    def test_search_groups_blank_term(self, chat_registry, group_chat, alice):
        assert chat_registry.search_groups(alice.id, "  ") == []

    def test_get_for_participant_forbidden(self, chat_registry, direct_chat, carol):
        with pytest.raises(PermissionDeniedError) as exc_info:
            chat_registry.get_for_participant(direct_chat.id, carol.id)

        assert exc_info.value.error_code == "NOT_PARTICIPANT"

    def test_get_unknown_chat(self, chat_registry):
        with pytest.raises(NotFoundError):
            chat_registry.get_by_id(UNKNOWN_ID)

    def test_is_participant(self, chat_registry, direct_chat, alice, carol):
        assert chat_registry.is_participant(direct_chat.id, alice.id) is True
        assert chat_registry.is_participant(direct_chat.id, carol.id) is False
        assert chat_registry.is_participant("", alice.id) is False

    def test_deactivate_drops_pair_key(self, chat_registry, document_store, direct_chat):
        chat_registry.deactivate(direct_chat.id)

        document = async_to_sync(document_store.find_one)("chats", {"_id": direct_chat.id})
        assert document["is_active"] is False
        assert "pair_key" not in document
