"""The capability boundary against the cluster management API.

The convergence engine never talks to a cluster directly. It consumes a
`ClusterGateway`, an object whose methods issue one request each against the
Kafka admin and metadata service APIs and return point-in-time snapshots.
Implementations are supplied by the deployment (see
`confluentresourceoperator.startup`) and are expected to raise:

- `~confluentresourceoperator.errors.ResourceNotFound` when the addressed
  topic does not exist;
- `~confluentresourceoperator.errors.TransientGatewayError` for failures that
  may clear up on their own (timeouts, unavailable brokers, 5xx responses);
- `~confluentresourceoperator.errors.FatalGatewayError` for everything else.
"""

from __future__ import annotations

__all__ = (
    "PLACEMENT_CONSTRAINTS_KEY",
    "ClusterGateway",
    "GatewayFactory",
    "Partition",
    "Topic",
)

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from confluentresourceoperator.identity import ResourcePattern, ResourceScope

PLACEMENT_CONSTRAINTS_KEY = "confluent.placement.constraints"
"""Topic config key under which replica placement is managed out of band."""


@dataclass
class Topic:
    """A Kafka topic, either as desired or as observed on the cluster.

    Parameters
    ----------
    name : `str`
        The topic name. Immutable; it is also the topic's identity.
    cluster_id : `str`
        The id of the Kafka cluster hosting the topic. Immutable.
    partitions : `int`
        Number of partitions. Can only grow.
    replication_factor : `int`
        Number of replicas per partition. ``0`` when the topic is placement
        constrained.
    config : `dict`
        Topic configuration overrides.
    """

    name: str
    cluster_id: str
    partitions: int
    replication_factor: int = 0
    config: dict[str, str] = field(default_factory=dict)

    @property
    def placement_constrained(self) -> bool:
        """Whether replica placement is managed by placement constraints."""
        return PLACEMENT_CONSTRAINTS_KEY in self.config


@dataclass(frozen=True)
class Partition:
    """A single partition of a topic."""

    partition_id: int
    leader: int | None = None
    replicas: tuple[int, ...] = ()


@runtime_checkable
class ClusterGateway(Protocol):
    """Operations the convergence engine needs from the cluster."""

    def lookup_binding(
        self, principal: str, role: str, scope: ResourceScope
    ) -> list[ResourcePattern]:
        """List the resource patterns ``principal`` holds ``role`` on.

        An empty list means the principal holds no such binding in the scope.
        """
        ...

    def bind(
        self,
        principal: str,
        role: str,
        scope: ResourceScope,
        pattern: ResourcePattern | None = None,
    ) -> None:
        """Bind ``role`` to ``principal``, on a pattern if one is given.

        Repeating a bind that already took effect must not fail.
        """
        ...

    def unbind(
        self,
        principal: str,
        role: str,
        scope: ResourceScope,
        pattern: ResourcePattern | None = None,
    ) -> None:
        """Remove a binding created by `bind`."""
        ...

    def get_topic(self, cluster_id: str, name: str) -> Topic:
        """Describe a topic, including its configuration overrides."""
        ...

    def create_topic(self, topic: Topic) -> None: ...

    def update_replication_factor(
        self, cluster_id: str, name: str, replication_factor: int
    ) -> None:
        """Start reassigning the topic's replicas to a new factor.

        The call returns once the reassignment is accepted, not once it is
        complete; see `is_replication_factor_updating`.
        """
        ...

    def update_partitions(
        self, cluster_id: str, name: str, partitions: int
    ) -> None: ...

    def update_config(
        self, cluster_id: str, name: str, config: Mapping[str, str]
    ) -> None:
        """Apply a whole configuration map to a topic in one request."""
        ...

    def delete_topic(self, cluster_id: str, name: str) -> None: ...

    def is_replication_factor_updating(
        self, cluster_id: str, name: str
    ) -> bool:
        """Whether a replica reassignment is still in progress."""
        ...

    def list_partitions(self, cluster_id: str, name: str) -> list[Partition]:
        ...


GatewayFactory = Callable[[Mapping[str, str]], ClusterGateway]
"""Builds a gateway from the decoded gateway settings Secret."""
