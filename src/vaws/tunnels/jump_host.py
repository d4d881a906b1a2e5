"""Jump host discovery for private targets.

Candidates are ranked in four tiers:

1. the explicit per-profile override (instance id or name)
2. tag match, earlier tags in the list first
3. name match, exact before substring, earlier names first
4. any other reachable host

Only reachable candidates are considered, and only those in the target's
network when the target names one.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from ..common.context import deadline
from ..common.exceptions import OperationTimeoutError, ResolutionError
from ..common.logging import get_logger
from ..common.utils import parse_tag_filter
from ..config import DashboardConfig, JumpHostDefaults
from ..service.interfaces import ResourceService
from ..service.models import JumpHostCandidate, PrivateEndpoint

logger = get_logger(__name__)


@dataclass(frozen=True)
class JumpHostRules:
    """Heuristics for one resolution, injected rather than hard-coded."""

    override: str | None = None
    tags: tuple[str, ...] = ()
    names: tuple[str, ...] = ()
    endpoint_override: str | None = None

    @classmethod
    def from_config(cls, config: DashboardConfig, profile: str | None) -> "JumpHostRules":
        """Build rules for ``profile``; a profile tag replaces the default tag list."""
        defaults: JumpHostDefaults = config.defaults
        profile_tag = config.get_jump_host_tag(profile)
        return cls(
            override=config.get_jump_host(profile),
            tags=(profile_tag,) if profile_tag else defaults.jump_host_tags,
            names=defaults.jump_host_names,
            endpoint_override=config.get_vpc_endpoint_id(profile),
        )


@dataclass(frozen=True)
class JumpHostResolution:
    """Outcome of a successful resolution."""

    jump_host: JumpHostCandidate
    reason: str
    endpoint: PrivateEndpoint | None = None
    endpoint_error: str | None = None


def _matches_tag(candidate: JumpHostCandidate, tag: str) -> bool:
    key, value = parse_tag_filter(tag)
    if key not in candidate.tags:
        return False
    return value is None or candidate.tags[key] == value


def rank_candidates(
    candidates: Sequence[JumpHostCandidate],
    rules: JumpHostRules,
    network_id: str | None = None,
) -> tuple[JumpHostCandidate, str] | None:
    """Pick the best candidate.

    Returns:
        ``(candidate, reason)`` or None when no reachable candidate qualifies

    Raises:
        ResolutionError: If an override is configured but matches nothing
    """
    usable = [c for c in candidates if c.reachable]
    if network_id:
        usable = [c for c in usable if c.network_id == network_id]

    if rules.override:
        for candidate in usable:
            if rules.override in (candidate.instance_id, candidate.name):
                return candidate, "override"
        raise ResolutionError(
            f"Configured jump host '{rules.override}' is not a reachable instance"
            + (f" in network {network_id}" if network_id else "")
        )

    for tag in rules.tags:
        for candidate in usable:
            if _matches_tag(candidate, tag):
                return candidate, f"tag {tag}"

    lowered = [(candidate, candidate.name.lower()) for candidate in usable]
    for name in rules.names:
        wanted = name.lower()
        for candidate, candidate_name in lowered:
            if candidate_name == wanted:
                return candidate, f"name {name}"
        for candidate, candidate_name in lowered:
            if wanted in candidate_name:
                return candidate, f"name {name}"

    if usable:
        return usable[0], "fallback"
    return None


class JumpHostResolver:
    """Finds a reachable relay host and, best effort, the target's private endpoint."""

    def __init__(self, service: ResourceService, call_timeout: float = 30.0):
        self.service = service
        self.call_timeout = call_timeout

    async def list_candidates(self) -> list[JumpHostCandidate]:
        """List remote-exec managed instances.

        Raises:
            ResolutionError: If the instances cannot be listed
        """
        try:
            async with deadline(self.call_timeout, "listing jump host candidates"):
                return list(await self.service.list_jump_host_candidates())
        except OperationTimeoutError:
            raise
        except Exception as e:
            raise ResolutionError(f"Failed to list jump host candidates: {e}") from e

    async def resolve(
        self, rules: JumpHostRules, network_id: str | None = None
    ) -> JumpHostResolution:
        """Choose a jump host for a target in ``network_id``.

        Raises:
            ResolutionError: If no candidate qualifies or discovery fails
        """
        candidates = await self.list_candidates()
        ranked = rank_candidates(candidates, rules, network_id)
        if ranked is None:
            raise ResolutionError(
                "No reachable jump host found"
                + (f" in network {network_id}" if network_id else "")
                + f" ({len(candidates)} candidates checked)"
            )

        jump_host, reason = ranked
        logger.info(
            "Selected jump host",
            instance_id=jump_host.instance_id,
            name=jump_host.name,
            reason=reason,
        )
        return await self.with_endpoint(jump_host, rules, reason)

    async def with_endpoint(
        self, jump_host: JumpHostCandidate, rules: JumpHostRules, reason: str = "selected"
    ) -> JumpHostResolution:
        """Attach the private endpoint for the jump host's network.

        Lookup failures are recorded on the resolution, never raised.
        """
        if rules.endpoint_override:
            endpoint = PrivateEndpoint(
                endpoint_id=rules.endpoint_override, network_id=jump_host.network_id
            )
            return JumpHostResolution(jump_host, reason, endpoint=endpoint)

        if not jump_host.network_id:
            return JumpHostResolution(jump_host, reason)

        try:
            async with deadline(self.call_timeout, "finding private endpoint"):
                endpoint = await self.service.find_private_endpoint(jump_host.network_id)
        except Exception as e:
            logger.warning(
                "Private endpoint lookup failed, routing through jump host network",
                network_id=jump_host.network_id,
                error=str(e),
            )
            return JumpHostResolution(jump_host, reason, endpoint_error=str(e))

        if endpoint is None:
            logger.info("No private endpoint in network", network_id=jump_host.network_id)
        return JumpHostResolution(jump_host, reason, endpoint=endpoint)
