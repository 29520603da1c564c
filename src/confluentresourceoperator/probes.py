"""Refresh probes for topic convergence waits.

Each function here builds a `~confluentresourceoperator.poller.RefreshFunc`
around a gateway read. Probes never swallow gateway errors; the poller
propagates them to the caller without polling again.
"""

from __future__ import annotations

__all__ = (
    "DELETING",
    "READY",
    "UPDATING",
    "TopicObservation",
    "delete_probe",
    "replication_factor_probe",
    "topic_probe",
)

from dataclasses import dataclass
from typing import Any

import structlog

from confluentresourceoperator.errors import ResourceNotFound
from confluentresourceoperator.gateway import ClusterGateway, Topic
from confluentresourceoperator.poller import RefreshFunc

UPDATING = "Updating"
DELETING = "Deleting"
READY = "Ready"


@dataclass(frozen=True)
class TopicObservation:
    """Replication factor and partition count read back from the cluster."""

    replication_factor: int
    partitions: int


def replication_factor_probe(
    gateway: ClusterGateway,
    cluster_id: str,
    name: str,
    logger: Any | None = None,
) -> RefreshFunc:
    """Report `UPDATING` while a replica reassignment of the topic is in
    progress, then `READY`.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    def refresh() -> tuple[Any, str]:
        if gateway.is_replication_factor_updating(cluster_id, name):
            logger.debug(f"Replication factor of {name} is still updating")
            return None, UPDATING
        return name, READY

    return refresh


def topic_probe(
    gateway: ClusterGateway,
    expected: Topic,
    logger: Any | None = None,
) -> RefreshFunc:
    """Report `READY` once the topic's replication factor and partition
    count both match ``expected``, and `UPDATING` until then.

    Partition counts propagate through the brokers after the update call
    returns, so the count is read from the partition listing rather than
    trusted from the update. The replication factor is not compared for a
    placement constrained topic, or when ``expected`` leaves it unset.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)
    check_replication_factor = (
        not expected.placement_constrained and expected.replication_factor > 0
    )

    def refresh() -> tuple[Any, str]:
        actual = gateway.get_topic(expected.cluster_id, expected.name)
        partitions = gateway.list_partitions(
            expected.cluster_id, expected.name
        )
        observation = TopicObservation(
            replication_factor=actual.replication_factor,
            partitions=len(partitions),
        )
        logger.debug(
            f"Topic {expected.name}: observed partitions "
            f"{observation.partitions} (expected {expected.partitions}), "
            f"replication factor {observation.replication_factor} "
            f"(expected {expected.replication_factor})"
        )
        if observation.partitions != expected.partitions:
            return observation, UPDATING
        if (
            check_replication_factor
            and observation.replication_factor != expected.replication_factor
        ):
            return observation, UPDATING
        return observation, READY

    return refresh


def delete_probe(
    gateway: ClusterGateway,
    cluster_id: str,
    name: str,
    logger: Any | None = None,
) -> RefreshFunc:
    """Report `READY` once reading the topic fails with
    `~confluentresourceoperator.errors.ResourceNotFound`, and `DELETING`
    while it is still readable.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    def refresh() -> tuple[Any, str]:
        try:
            topic = gateway.get_topic(cluster_id, name)
        except ResourceNotFound:
            return None, READY
        logger.debug(f"Topic {name} still exists; waiting for deletion")
        return topic, DELETING

    return refresh
