"""Tests for jump host rules, ranking and resolution."""

import pytest

from vaws.common.exceptions import ResolutionError
from vaws.config import DashboardConfig, ProfileConfig
from vaws.service.models import JumpHostCandidate, PrivateEndpoint
from vaws.tunnels.jump_host import JumpHostResolver, JumpHostRules, rank_candidates

DEFAULT_RULES = JumpHostRules.from_config(DashboardConfig(), None)


def candidate(instance_id, name="", tags=None, network_id="vpc-1", reachable=True):
    return JumpHostCandidate(
        instance_id=instance_id,
        name=name,
        tags=tags or {},
        network_id=network_id,
        reachable=reachable,
    )


class TestJumpHostRules:
    """Test JumpHostRules construction from config."""

    def test_defaults(self):
        """Test default rules carry the built-in tags and names"""
        assert DEFAULT_RULES.override is None
        assert DEFAULT_RULES.tags == ("vaws:jump-host=true", "Name=bastion", "Name=jump-host")
        assert DEFAULT_RULES.names == ("bastion", "jump-host", "jumphost")
        assert DEFAULT_RULES.endpoint_override is None

    def test_profile_overrides(self):
        """Test a profile's tag replaces the default tag list"""
        config = DashboardConfig(
            profiles={
                "prod": ProfileConfig(
                    jump_host="i-123",
                    jump_host_tag="Role=relay",
                    vpc_endpoint_id="vpce-abc",
                )
            }
        )

        rules = JumpHostRules.from_config(config, "prod")

        assert rules.override == "i-123"
        assert rules.tags == ("Role=relay",)
        assert rules.names == ("bastion", "jump-host", "jumphost")
        assert rules.endpoint_override == "vpce-abc"

    def test_unknown_profile_uses_defaults(self):
        """Test an unconfigured profile falls back to the defaults"""
        assert JumpHostRules.from_config(DashboardConfig(), "staging") == DEFAULT_RULES


class TestRankCandidates:
    """Test candidate filtering and ordering."""

    def test_tag_beats_name(self):
        """Test a tag match wins over an earlier exact name match"""
        named = candidate("i-1", name="bastion")
        tagged = candidate("i-2", name="web-1", tags={"vaws:jump-host": "true"})

        chosen, reason = rank_candidates([named, tagged], DEFAULT_RULES)

        assert chosen is tagged
        assert reason == "tag vaws:jump-host=true"

    def test_earlier_tag_wins(self):
        """Test tags are tried in list order"""
        jump = candidate("i-1", tags={"Name": "jump-host"})
        bastion = candidate("i-2", tags={"Name": "bastion"})

        chosen, _ = rank_candidates([jump, bastion], DEFAULT_RULES)

        assert chosen is bastion

    def test_presence_only_tag(self):
        """Test a bare tag key matches any value"""
        rules = JumpHostRules(tags=("Relay",))
        relay = candidate("i-2", tags={"Relay": "anything"})

        chosen, _ = rank_candidates([candidate("i-1"), relay], rules)

        assert chosen is relay

    def test_exact_name_before_substring(self):
        """Test an exact name match beats a substring match"""
        old = candidate("i-1", name="old-bastion-host")
        exact = candidate("i-2", name="BASTION")

        chosen, reason = rank_candidates([old, exact], DEFAULT_RULES)

        assert chosen is exact
        assert reason == "name bastion"

    def test_substring_name(self):
        """Test a substring match is used when nothing matches exactly"""
        relay = candidate("i-2", name="prod-jumphost-a")

        chosen, _ = rank_candidates([candidate("i-1", name="web"), relay], DEFAULT_RULES)

        assert chosen is relay

    def test_fallback_to_first_reachable(self):
        """Test any reachable candidate is used when no heuristic matches"""
        offline = candidate("i-0", name="bastion", reachable=False)
        first = candidate("i-1", name="web")

        chosen, reason = rank_candidates([offline, first, candidate("i-2")], DEFAULT_RULES)

        assert chosen is first
        assert reason == "fallback"

    def test_network_filter(self):
        """Test candidates outside the target's network are ignored"""
        other = candidate("i-1", name="bastion", network_id="vpc-2")
        local = candidate("i-2", name="web", network_id="vpc-1")

        chosen, _ = rank_candidates([other, local], DEFAULT_RULES, network_id="vpc-1")

        assert chosen is local

    def test_no_candidates(self):
        """Test nothing usable yields None"""
        offline = candidate("i-1", reachable=False)
        assert rank_candidates([], DEFAULT_RULES) is None
        assert rank_candidates([offline], DEFAULT_RULES) is None

    def test_override_by_id_or_name(self):
        """Test the override wins over every heuristic"""
        tagged = candidate("i-1", tags={"vaws:jump-host": "true"})
        chosen_one = candidate("i-2", name="relay-7")

        by_id, reason = rank_candidates(
            [tagged, chosen_one], JumpHostRules(override="i-2", tags=DEFAULT_RULES.tags)
        )
        by_name, _ = rank_candidates([tagged, chosen_one], JumpHostRules(override="relay-7"))

        assert by_id is chosen_one
        assert reason == "override"
        assert by_name is chosen_one

    def test_override_not_found(self):
        """Test an override that matches nothing is an error, not a fallback"""
        with pytest.raises(ResolutionError, match="i-missing"):
            rank_candidates([candidate("i-1")], JumpHostRules(override="i-missing"))


class TestJumpHostResolver:
    """Test jump host resolution against the service."""

    @pytest.mark.asyncio
    async def test_resolve_with_endpoint(self, make_service, bastion):
        """Test resolution attaches the private endpoint of the host's network"""
        endpoint = PrivateEndpoint(endpoint_id="vpce-1", network_id="vpc-1")
        service = make_service(candidates=[bastion], endpoint=endpoint)
        resolver = JumpHostResolver(service)

        resolution = await resolver.resolve(DEFAULT_RULES, "vpc-1")

        assert resolution.jump_host is bastion
        assert resolution.reason == "tag Name=bastion"
        assert resolution.endpoint == endpoint
        assert resolution.endpoint_error is None
        assert service.endpoint_calls == ["vpc-1"]

    @pytest.mark.asyncio
    async def test_endpoint_failure_is_recorded(self, make_service, bastion):
        """Test a failed endpoint lookup does not fail resolution"""
        service = make_service(candidates=[bastion])
        service.endpoint_error = RuntimeError("UnauthorizedOperation")
        resolver = JumpHostResolver(service)

        resolution = await resolver.resolve(DEFAULT_RULES, "vpc-1")

        assert resolution.jump_host is bastion
        assert resolution.endpoint is None
        assert "UnauthorizedOperation" in resolution.endpoint_error

    @pytest.mark.asyncio
    async def test_endpoint_override_skips_lookup(self, make_service, bastion):
        """Test a configured endpoint id is used without a lookup"""
        service = make_service(candidates=[bastion])
        resolver = JumpHostResolver(service)
        rules = JumpHostRules(endpoint_override="vpce-cross-account")

        resolution = await resolver.resolve(rules, "vpc-1")

        assert resolution.endpoint.endpoint_id == "vpce-cross-account"
        assert service.endpoint_calls == []

    @pytest.mark.asyncio
    async def test_no_match_raises(self, make_service):
        """Test no reachable candidate raises ResolutionError"""
        service = make_service(candidates=[candidate("i-1", network_id="vpc-9")])
        resolver = JumpHostResolver(service)

        with pytest.raises(ResolutionError, match="No reachable jump host found in network vpc-1"):
            await resolver.resolve(DEFAULT_RULES, "vpc-1")

    @pytest.mark.asyncio
    async def test_listing_failure_wrapped(self, make_service):
        """Test a failed instance listing raises ResolutionError"""
        service = make_service()
        service.candidates_error = RuntimeError("AccessDenied")
        resolver = JumpHostResolver(service)

        with pytest.raises(ResolutionError, match="AccessDenied") as exc_info:
            await resolver.list_candidates()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
