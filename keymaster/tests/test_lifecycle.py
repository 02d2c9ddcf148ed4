"""Tests for the team, membership and api key lifecycle."""

import dataclasses
import pytest

from keymaster import labels
from keymaster.backend.models.policy import PolicyKind
from keymaster.backend.policy_store import MemoryPolicyStore
from keymaster.backend.store import MemoryEntityStore
from keymaster.config import UNLIMITED, LimitOverrides, lookup_tier
from keymaster.credentials import fingerprint
from keymaster.errors import (
    ConflictError,
    NotAMemberError,
    NotFoundError,
    PolicyManagementDisabledError,
    PublishError,
    StoreError,
    TierConfigurationError,
    ValidationError,
)
from keymaster.lifecycle import KeyUpdate, LifecycleEngine
from keymaster.limits import resolve_limits
from keymaster.policy import PolicyPublisher
from keymaster.records import KeyStatus


class FailingPolicyStore(MemoryPolicyStore):
    """Policy store whose creates fail for the configured kinds."""

    def __init__(self, fail_kinds=()):
        super().__init__()
        self.fail_kinds = set(fail_kinds)

    def create(self, policy):
        if policy.kind in self.fail_kinds:
            raise StoreError(f"Store request for {policy.resource.kind} {policy.name} failed")
        return super().create(policy)


class TestCreateTeam:
    """Test team creation and its policies."""

    def test_create_team_publishes_both_policies(self, engine, entity_store, policy_store):
        team = engine.create_team("t1", "Team One", tier="standard")

        assert team.resource_version is not None
        assert "team-t1-config" in entity_store.records
        assert set(policy_store.policies) == {
            (PolicyKind.TOKEN, "team-t1-token-limits"),
            (PolicyKind.REQUEST, "team-t1-request-limits"),
        }

    def test_overrides_reach_the_policies(self, engine, policy_store):
        engine.create_team(
            "t1", "Team One", tier="free", overrides=LimitOverrides(token_limit=4000, time_window="1h")
        )

        token = policy_store.get(PolicyKind.TOKEN, "team-t1-token-limits")
        request = policy_store.get(PolicyKind.REQUEST, "team-t1-request-limits")
        assert (token.limit, token.window) == (4000, "1h")
        assert (request.limit, request.window) == (lookup_tier("free").request_limit, "1h")

    def test_zero_override_keeps_tier_default(self, engine):
        team = engine.create_team("t1", "Team One", tier="free", overrides=LimitOverrides(token_limit=0))
        assert engine.team_limits(team).token_limit == lookup_tier("free").token_limit

    def test_unlimited_tier_publishes_nothing(self, engine, policy_store):
        engine.create_team("t1", "Team One", tier="unlimited")
        assert policy_store.policies == {}

    def test_empty_tier_uses_default(self, engine):
        assert engine.create_team("t1", "Team One").tier == "standard"

    def test_aggregate_team_counts_team(self, engine, policy_store):
        engine.create_team("t1", "Team One", tier="standard", aggregate_limits=True)
        token = policy_store.get(PolicyKind.TOKEN, "team-t1-token-limits")
        assert "maas/team-id" in token.counter

    @pytest.mark.parametrize("team_id", ["", "T1", "-t1", "t1-", "team_one", "a" * 64])
    def test_invalid_team_id(self, engine, team_id):
        with pytest.raises(ValidationError):
            engine.create_team(team_id, "Team")

    def test_name_required(self, engine):
        with pytest.raises(ValidationError):
            engine.create_team("t1", "")

    def test_unknown_tier_rejected(self, engine, entity_store):
        with pytest.raises(ValidationError):
            engine.create_team("t1", "Team One", tier="gold")
        assert entity_store.records == {}

    def test_duplicate_team(self, engine):
        engine.create_team("t1", "Team One")
        with pytest.raises(ConflictError):
            engine.create_team("t1", "Team One Again")

    def test_duplicate_lost_on_store_create(self, engine, entity_store, policy_store):
        """Test the store's create-if-absent decides a race the lookup missed."""
        engine.create_team("t1", "Team One")
        original_get = entity_store.get
        entity_store.get = lambda name: None
        try:
            with pytest.raises(ConflictError):
                engine.create_team("t1", "Team One Again")
        finally:
            entity_store.get = original_get

        assert engine.list_teams()[0].display_name == "Team One"
        assert len(policy_store.policies) == 2

    def test_publish_failure_removes_team(self, entity_store):
        """Test the compensating delete when the first publish fails."""
        publisher = PolicyPublisher(FailingPolicyStore(fail_kinds=[PolicyKind.TOKEN]))
        engine = LifecycleEngine(entity_store, publisher)

        with pytest.raises(PublishError):
            engine.create_team("t1", "Team One", tier="standard")
        assert entity_store.get("team-t1-config") is None

    def test_second_publish_failure_unwinds_everything(self, entity_store):
        store = FailingPolicyStore(fail_kinds=[PolicyKind.REQUEST])
        engine = LifecycleEngine(entity_store, PolicyPublisher(store))

        with pytest.raises(PublishError) as exc_info:
            engine.create_team("t1", "Team One", tier="standard")
        assert "RateLimitPolicy" in exc_info.value.message
        assert entity_store.records == {}
        assert store.policies == {}

    def test_policy_management_disabled(self, entity_store):
        engine = LifecycleEngine(entity_store, publisher=None)
        engine.create_team("t1", "Team One", tier="standard")
        assert engine.get_team_policies("t1").policies == []

    def test_unknown_configured_default_tier(self, entity_store):
        with pytest.raises(TierConfigurationError):
            LifecycleEngine(entity_store, default_tier="platinum")


class TestDeleteTeam:
    """Test the delete cascade."""

    def test_create_then_delete_leaves_nothing(self, engine, entity_store, policy_store):
        engine.create_team("t1", "Team One", tier="standard")
        engine.create_api_key("t1", "alice")
        engine.add_team_member("t1", "bob")

        assert engine.delete_team("t1") == 2
        assert entity_store.list(labels.team_keys("t1")) == []
        assert entity_store.list({labels.TEAM_ID: "t1"}) == []
        assert policy_store.list(PolicyKind.TOKEN, labels.team_policies("t1")) == []
        assert policy_store.list(PolicyKind.REQUEST, labels.team_policies("t1")) == []

    def test_other_teams_untouched(self, engine, policy_store):
        engine.create_team("t1", "Team One")
        engine.create_team("t2", "Team Two")
        engine.create_api_key("t2", "carol")

        engine.delete_team("t1")
        assert [team.team_id for team in engine.list_teams()] == ["t2"]
        assert len(engine.list_team_keys("t2")) == 1
        assert len(policy_store.policies) == 2

    def test_missing_policies_do_not_block_delete(self, engine, policy_store, entity_store):
        engine.create_team("t1", "Team One")
        policy_store.policies.clear()

        engine.delete_team("t1")
        assert entity_store.records == {}

    def test_delete_missing_team(self, engine):
        with pytest.raises(NotFoundError):
            engine.delete_team("ghost")


class TestSyncTeamPolicy:
    """Test re-publishing policies."""

    def test_sync_is_idempotent(self, engine, policy_store):
        engine.create_team("t1", "Team One", tier="standard")
        versions = {key: policy.resource_version for key, policy in policy_store.policies.items()}

        engine.sync_team_policy("t1")
        synced = engine.sync_team_policy("t1")

        assert len(policy_store.policies) == 2
        assert len(synced.policies) == 2
        for key, policy in policy_store.policies.items():
            assert policy.resource_version != versions[key]
        assert synced.limits.token_limit_per_hour == 50000

    def test_sync_restores_deleted_policy(self, engine, policy_store):
        engine.create_team("t1", "Team One")
        policy_store.delete(PolicyKind.REQUEST, "team-t1-request-limits")

        engine.sync_team_policy("t1")
        assert (PolicyKind.REQUEST, "team-t1-request-limits") in policy_store.policies

    def test_sync_missing_team(self, engine):
        with pytest.raises(NotFoundError):
            engine.sync_team_policy("ghost")


class TestCreateAPIKey:
    """Test key issuance and derived membership."""

    def test_default_team_synthesizes_membership(self, engine):
        engine.ensure_default_team()
        created = engine.create_api_key("default", "alice")

        assert created.key.team_id == "default"
        assert created.key.role == "member"
        assert created.key.user_email == "alice@default.local"
        assert created.limits.tier == "standard"

    def test_default_team_any_user(self, engine):
        engine.ensure_default_team()
        engine.create_api_key("default", "alice")
        engine.create_api_key("default", "bob")
        assert len(engine.entities.list(labels.team_keys("default"))) == 2

    def test_first_key_makes_owner(self, engine, owner_key):
        assert owner_key.key.role == "owner"
        assert [member.user_id for member in engine.list_team_members("t1")] == ["alice"]

    def test_member_can_create_more_keys(self, engine, owner_key):
        second = engine.create_api_key("t1", "alice", alias="ci")
        assert second.key.role == "owner"
        assert second.secret != owner_key.secret
        assert len(engine.list_team_keys("t1")) == 2

    def test_stranger_is_not_a_member(self, engine, owner_key):
        with pytest.raises(NotAMemberError):
            engine.create_api_key("t1", "mallory")

    def test_missing_team(self, engine):
        with pytest.raises(NotFoundError):
            engine.create_api_key("ghost", "alice")

    def test_invalid_user_id(self, engine):
        engine.create_team("t1", "Team One")
        with pytest.raises(ValidationError):
            engine.create_api_key("t1", "Alice")

    def test_record_layout(self, engine, entity_store, owner_key):
        record = entity_store.records[owner_key.secret_name]

        assert owner_key.secret_name == f"apikey-alice-t1-{owner_key.fingerprint[:8]}"
        assert record.string_data == {"api_key": owner_key.secret}
        assert record.labels[labels.KEY_SHA256] == fingerprint(owner_key.secret)
        assert owner_key.secret not in record.labels.values()
        assert owner_key.secret not in record.annotations.values()

    def test_request_overrides_win(self, engine, owner_key):
        created = engine.create_api_key(
            "t1", "alice", overrides=LimitOverrides(token_limit=123, models=["simulator-model"])
        )
        assert created.key.token_limit == 123
        assert created.key.request_limit == lookup_tier("standard").request_limit
        assert created.key.models_allowed == ["simulator-model"]

    def test_membership_limits_inherited(self, engine, owner_key):
        engine.update_api_key(owner_key.secret_name, KeyUpdate(token_limit=999))
        created = engine.create_api_key("t1", "alice")
        assert created.key.token_limit == 999

    def test_team_overrides_reach_first_key(self, engine):
        engine.create_team("t1", "Team One", tier="premium", overrides=LimitOverrides(request_limit=UNLIMITED))
        created = engine.create_api_key("t1", "alice")
        assert created.key.tier == "premium"
        assert created.key.request_limit == UNLIMITED

    def test_inactive_key_is_not_membership(self, engine, owner_key):
        engine.update_api_key(owner_key.secret_name, KeyUpdate(status="inactive"))
        with pytest.raises(NotAMemberError):
            engine.create_api_key("t1", "alice")
        assert engine.list_team_members("t1") == []

    def test_legacy_key(self, engine):
        engine.ensure_default_team()
        created = engine.generate_legacy_key("alice")
        assert created.key.team_id == "default"
        assert created.key.alias == "legacy-key"

    def test_deleted_default_team_issues_no_keys(self, engine, entity_store):
        engine.ensure_default_team()
        engine.delete_team("default")

        with pytest.raises(NotFoundError):
            engine.create_api_key("default", "bob")
        with pytest.raises(NotFoundError):
            engine.generate_legacy_key("bob")
        assert entity_store.records == {}

    def test_kind_specific_team_windows_reach_keys(self, engine):
        engine.create_team(
            "t1", "Team One", overrides=LimitOverrides(token_window="1h", request_window="30s")
        )
        first = engine.create_api_key("t1", "alice")
        second = engine.create_api_key("t1", "alice")

        for created in (first, second):
            assert created.limits.token_window == "1h"
            assert created.limits.request_window == "30s"
            assert created.serialize()["effective_limits"]["request_window"] == "30s"

    def test_explicit_time_window_covers_both_kinds(self, engine):
        engine.create_team(
            "t1", "Team One", overrides=LimitOverrides(token_window="1h", request_window="30s")
        )
        created = engine.create_api_key("t1", "alice", overrides=LimitOverrides(time_window="5m"))
        assert (created.limits.token_window, created.limits.request_window) == ("5m", "5m")

    def test_serialize_exposes_secret_once(self, owner_key):
        data = owner_key.serialize()
        assert data["api_key"] == owner_key.secret
        assert data["secret_name"] == owner_key.secret_name
        assert data["inherited_policies"]["team_hourly_limit"] == 50000


class TestMembers:
    """Test explicit membership management."""

    def test_add_member(self, engine, owner_key):
        created = engine.add_team_member("t1", "bob", role="admin", user_email="bob@example.com")

        assert created.key.role == "admin"
        assert created.key.user_email == "bob@example.com"
        assert {member.user_id for member in engine.list_team_members("t1")} == {"alice", "bob"}
        engine.create_api_key("t1", "bob")

    def test_add_existing_member(self, engine, owner_key):
        with pytest.raises(ConflictError):
            engine.add_team_member("t1", "alice")

    def test_add_member_invalid_role(self, engine, owner_key):
        with pytest.raises(ValidationError):
            engine.add_team_member("t1", "bob", role="superuser")

    def test_add_member_missing_team(self, engine):
        with pytest.raises(NotFoundError):
            engine.add_team_member("ghost", "bob")

    def test_remove_member(self, engine, owner_key):
        engine.create_api_key("t1", "alice")
        engine.add_team_member("t1", "bob")

        assert engine.remove_team_member("t1", "alice") == 2
        assert [member.user_id for member in engine.list_team_members("t1")] == ["bob"]
        with pytest.raises(NotAMemberError):
            engine.create_api_key("t1", "alice")

    def test_remove_unknown_member(self, engine, owner_key):
        with pytest.raises(NotFoundError):
            engine.remove_team_member("t1", "mallory")

    def test_members_deduplicated(self, engine, owner_key):
        engine.create_api_key("t1", "alice")
        engine.create_api_key("t1", "alice")
        members = engine.list_team_members("t1")
        assert len(members) == 1
        assert members[0].role == "owner"


class TestUpdateAPIKey:
    """Test in-place key updates."""

    def test_update_fields(self, engine, owner_key):
        updated = engine.update_api_key(
            owner_key.secret_name,
            KeyUpdate(token_limit=5, request_limit=UNLIMITED, time_window="1h", status="inactive", alias="old"),
        )

        assert updated.token_limit == 5
        assert updated.request_limit == UNLIMITED
        assert updated.time_window == "1h"
        assert updated.status == KeyStatus.INACTIVE
        assert updated.alias == "old"
        assert updated.updated_at is not None

    def test_identity_unchanged(self, engine, entity_store, owner_key):
        before = dict(entity_store.records[owner_key.secret_name].labels)
        engine.update_api_key(owner_key.secret_name, KeyUpdate(token_limit=5))
        record = entity_store.records[owner_key.secret_name]

        assert record.labels == before
        assert record.string_data == {"api_key": owner_key.secret}

    def test_empty_update(self, engine, owner_key):
        with pytest.raises(ValidationError):
            engine.update_api_key(owner_key.secret_name, KeyUpdate())

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            KeyUpdate(status="deleted")
        with pytest.raises(ValidationError):
            KeyUpdate(time_window="soon")
        with pytest.raises(ValidationError):
            KeyUpdate(token_limit=-5)

    def test_missing_key(self, engine):
        with pytest.raises(NotFoundError):
            engine.update_api_key("apikey-ghost-t1-00000000", KeyUpdate(token_limit=5))

    def test_team_record_is_not_a_key(self, engine, owner_key):
        with pytest.raises(NotFoundError):
            engine.update_api_key("team-t1-config", KeyUpdate(token_limit=5))


class TestDeleteAPIKey:
    """Test deleting keys by name and by secret."""

    def test_delete_by_secret_once(self, engine, owner_key):
        assert engine.delete_api_key_by_secret(owner_key.secret) == owner_key.secret_name
        with pytest.raises(NotFoundError):
            engine.delete_api_key_by_secret(owner_key.secret)

    def test_delete_by_secret_unknown(self, engine):
        with pytest.raises(NotFoundError):
            engine.delete_api_key_by_secret("not-a-key")

    def test_delete_by_name(self, engine, owner_key):
        engine.delete_api_key_by_name(owner_key.secret_name)
        assert engine.list_team_keys("t1") == []
        with pytest.raises(NotFoundError):
            engine.delete_api_key_by_name(owner_key.secret_name)

    def test_delete_by_name_refuses_team_record(self, engine, owner_key):
        with pytest.raises(NotFoundError):
            engine.delete_api_key_by_name("team-t1-config")
        assert engine.get_team("t1").team.team_id == "t1"


class TestQueries:
    """Test the read-only operations."""

    def test_list_teams(self, engine):
        engine.create_team("t1", "Team One")
        engine.create_team("t2", "Team Two", tier="free")
        assert {(team.team_id, team.tier) for team in engine.list_teams()} == {("t1", "standard"), ("t2", "free")}

    def test_get_team(self, engine, owner_key):
        detail = engine.get_team("t1")
        assert detail.team.display_name == "Team One"
        assert detail.keys == [owner_key.secret_name]
        assert detail.serialize()["members"][0]["user_id"] == "alice"

    def test_get_missing_team(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_team("ghost")

    def test_team_policies(self, engine):
        engine.create_team("t1", "Team One", tier="premium")
        policies = engine.get_team_policies("t1")

        assert policies.limits.tier == "premium"
        assert {policy.name for policy in policies.policies} == {"team-t1-token-limits", "team-t1-request-limits"}

    def test_default_policies(self, engine):
        defaults = engine.get_default_policies()
        assert set(defaults) == {"free", "standard", "premium", "unlimited"}
        assert defaults["unlimited"].token_unlimited

    def test_effective_tier_limits_fallback(self, engine):
        assert engine.get_effective_tier_limits("gold") == engine.get_effective_tier_limits("standard")

    def test_team_usage(self, engine, owner_key):
        engine.create_api_key("t1", "alice")
        extra = engine.add_team_member("t1", "bob")
        engine.update_api_key(extra.secret_name, KeyUpdate(status="inactive"))

        usage = engine.get_team_usage("t1")
        assert usage.total_keys == 3
        assert usage.active_keys == 2
        assert usage.total_members == 1
        assert usage.members_summary[0]["keys_count"] == 2

    def test_list_teams_survives_hand_edited_record(self, engine, entity_store):
        engine.create_team("t1", "Team One")
        engine.create_team("t2", "Team Two", tier="free")
        entity_store.records["team-t2-config"].annotations[labels.TOKEN_LIMIT] = "-5"

        teams = {team.team_id: team for team in engine.list_teams()}
        assert set(teams) == {"t1", "t2"}
        assert teams["t2"].overrides.token_limit == 0

    def test_team_activity(self, engine, owner_key):
        extra = engine.add_team_member("t1", "bob")
        engine.update_api_key(extra.secret_name, KeyUpdate(status="inactive"))

        activity = engine.get_team_activity("t1")
        data = activity.serialize()
        assert data["total_keys"] == 2
        assert data["active_keys"] == 1
        assert {key["secret_name"] for key in data["keys"]} == {owner_key.secret_name, extra.secret_name}
        assert all("api_key" not in key for key in data["keys"])

    def test_team_activity_missing_team(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_team_activity("ghost")

    def test_list_models(self, engine):
        assert [model.id for model in engine.list_models()] == ["qwen3-0-6b-instruct", "simulator-model"]
        assert [model.id for model in engine.list_models("free")] == ["simulator-model"]
        assert len(engine.list_models("unlimited")) == 2


class TestPolicyReports:
    """Test the compliance report and policy health."""

    def test_fresh_teams_are_compliant(self, engine):
        engine.create_team("t1", "Team One")
        engine.create_team("t2", "Team Two", tier="unlimited")
        engine.ensure_default_team()

        data = engine.get_policy_compliance().serialize()
        assert data["total_teams"] == 3
        assert data["compliant_teams"] == 3
        assert data["compliance_percentage"] == 100.0

    def test_drifted_and_missing_policies_reported(self, engine, policy_store):
        engine.create_team("t1", "Team One")
        token = (PolicyKind.TOKEN, "team-t1-token-limits")
        policy_store.policies[token] = dataclasses.replace(policy_store.policies[token], limit=1, window="1h")
        del policy_store.policies[(PolicyKind.REQUEST, "team-t1-request-limits")]

        team = engine.get_policy_compliance().teams[0]
        assert not team.compliant
        assert team.drifted == {"team-t1-token-limits": ["limit", "window"]}
        assert team.missing == ["team-t1-request-limits"]

        engine.sync_team_policy("t1")
        assert engine.get_policy_compliance().teams[0].compliant

    def test_unexpected_policy_reported(self, engine):
        engine.create_team("t2", "Team Two", tier="unlimited")
        engine.publisher.publish("t2", PolicyKind.TOKEN, resolve_limits("standard"))

        data = engine.get_policy_compliance().serialize()
        assert data["non_compliant_teams"] == 1
        assert data["team_details"][0]["unexpected_policies"] == ["team-t2-token-limits"]

    def test_reports_need_policy_management(self):
        engine = LifecycleEngine(MemoryEntityStore(), None)
        with pytest.raises(PolicyManagementDisabledError):
            engine.get_policy_compliance()
        with pytest.raises(PolicyManagementDisabledError):
            engine.get_policy_health()

    def test_health(self, engine):
        health = engine.get_policy_health()
        assert health.healthy
        assert health.serialize()["overall_status"] == "healthy"

    def test_unreachable_policy_store_is_degraded(self, entity_store):
        class UnreachablePolicyStore(MemoryPolicyStore):
            def list(self, kind, labels):
                raise StoreError("Store request for policy list failed")

        engine = LifecycleEngine(entity_store, PolicyPublisher(UnreachablePolicyStore()))
        health = engine.get_policy_health()

        assert not health.healthy
        assert health.components["policy-store"].status == "unavailable"
        assert health.serialize()["overall_status"] == "degraded"


class TestDefaultTeam:
    """Test startup creation of the default team."""

    def test_ensure_creates_once(self, engine, policy_store):
        team = engine.ensure_default_team()
        again = engine.ensure_default_team()

        assert team.team_id == again.team_id == "default"
        assert len(engine.list_teams()) == 1
        assert policy_store.policies == {}

    def test_default_team_keys_listed(self, engine):
        engine.ensure_default_team()
        engine.generate_legacy_key("alice")
        assert [key.alias for key in engine.list_team_keys("default")] == ["legacy-key"]

    def test_isolated_stores(self):
        engine = LifecycleEngine(MemoryEntityStore(), None)
        engine.ensure_default_team()
        assert engine.get_team("default").team.tier == "standard"
