"""Models exchanged with the resource service adapter.

Pages, details and batches are request-scoped: they are built for one load,
handed to the UI and discarded.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..common.utils import name_from_url

T = TypeVar("T")


class ResourceSummary(BaseModel):
    """One entry of a listing page."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Identifier understood by describe_one")
    name: str = Field(default="", description="Display name")

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, data: Any) -> Any:
        """Listings that only return URLs or ARNs get their name from the id."""
        if isinstance(data, dict) and not data.get("name") and data.get("id"):
            data = {**data, "name": name_from_url(str(data["id"]))}
        return data


class ResourcePage(BaseModel):
    """Ordered summaries plus an opaque continuation token."""

    model_config = ConfigDict(frozen=True)

    items: list[ResourceSummary] = Field(default_factory=list)
    next_token: str | None = Field(
        default=None, description="Continuation token; None means last page"
    )

    @property
    def has_more(self) -> bool:
        return self.next_token is not None


class ResourceDetail(BaseModel):
    """Full attributes for one resource."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    resource_type: str = Field(default="")
    attributes: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class Batch(Generic[T]):
    """One incremental delivery of a load.

    ``is_append`` is False for the first batch of a load (replace the
    display) and True for every later one.
    """

    items: list[T] = field(default_factory=list)
    has_more: bool = False
    is_append: bool = False

    def __len__(self) -> int:
        return len(self.items)


class JumpHostCandidate(BaseModel):
    """An instance that may relay traffic into a private network."""

    model_config = ConfigDict(frozen=True)

    instance_id: str = Field(min_length=1)
    name: str = Field(default="")
    tags: dict[str, str] = Field(default_factory=dict)
    network_id: str | None = Field(default=None, description="VPC the instance lives in")
    reachable: bool = Field(
        default=True, description="Whether a remote-exec session can be opened"
    )


class PrivateEndpoint(BaseModel):
    """Private network endpoint for the target service."""

    model_config = ConfigDict(frozen=True)

    endpoint_id: str = Field(min_length=1)
    dns_name: str | None = None
    network_id: str | None = None
