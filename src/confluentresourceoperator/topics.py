"""Reconciliation of Kafka topics."""

from __future__ import annotations

__all__ = ("TopicReconciler", "TopicUpdate", "validate_topic")

import dataclasses
from dataclasses import dataclass
from typing import Any

import structlog

from confluentresourceoperator.errors import (
    ResourceNotFound,
    ValidationError,
    resource_context,
)
from confluentresourceoperator.gateway import ClusterGateway, Topic
from confluentresourceoperator.poller import (
    ConvergenceOutcome,
    ConvergenceTask,
    OperationContext,
    PollSettings,
    RefreshFunc,
    wait_for_state,
)
from confluentresourceoperator.probes import (
    DELETING,
    READY,
    UPDATING,
    TopicObservation,
    delete_probe,
    replication_factor_probe,
    topic_probe,
)

MAX_REPLICATION_FACTOR = 32767


@dataclass(frozen=True)
class TopicUpdate:
    """Outcome of `TopicReconciler.update`.

    Parameters
    ----------
    legs : `tuple` of `str`
        The mutations issued, in order: any of ``"replication_factor"``,
        ``"partitions"`` and ``"config"``.
    observation : `TopicObservation`
        The topic state read back by the final convergence wait.
    """

    legs: tuple[str, ...]
    observation: TopicObservation


def validate_topic(topic: Topic) -> None:
    """Check a desired topic before it is sent to the cluster.

    Raises
    ------
    ValidationError
        Raised if the name or cluster id is empty, the partition count is not
        positive, or the replication factor is out of range.
    """
    if not topic.name:
        raise ValidationError("topic name must not be empty")
    if not topic.cluster_id:
        raise ValidationError("cluster_id must not be empty")
    if topic.partitions < 1:
        raise ValidationError(
            f"partitions must be at least 1, got {topic.partitions}"
        )
    if not 0 <= topic.replication_factor <= MAX_REPLICATION_FACTOR:
        raise ValidationError(
            "replication_factor must be between 0 and "
            f"{MAX_REPLICATION_FACTOR}, got {topic.replication_factor}"
        )


class TopicReconciler:
    """Create, read, update and delete topics through a gateway.

    Parameters
    ----------
    gateway : `ClusterGateway`
        The cluster management API.
    settings : `PollSettings`, optional
        Timing of the convergence waits.
    logger : optional
        Logger to use. If not provided, a structlog logger is used.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        *,
        settings: PollSettings | None = None,
        logger: Any | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings or PollSettings()
        self.logger = logger or structlog.getLogger(__name__)

    def create(self, desired: Topic) -> str:
        """Create a topic and return its identity (the topic name).

        When the topic config carries placement constraints the replication
        factor sent to the cluster is forced to ``0``; the two settings are
        mutually exclusive.
        """
        validate_topic(desired)
        topic = desired
        if desired.placement_constrained and desired.replication_factor:
            self.logger.info(
                f"Topic {desired.name} has placement constraints; ignoring "
                f"replication_factor {desired.replication_factor}"
            )
            topic = dataclasses.replace(desired, replication_factor=0)

        self.logger.info(f"Creating topic {topic.name}")
        with resource_context(topic.name):
            self.gateway.create_topic(topic)
        self.logger.info(f"Created topic {topic.name}")
        return topic.name

    def read(self, identity: str, cluster_id: str) -> Topic:
        """Read the topic back from the cluster.

        Raises
        ------
        ResourceNotFound
            Raised if the topic no longer exists.
        """
        with resource_context(identity):
            topic = self.gateway.get_topic(cluster_id, identity)
        self.logger.debug(f"Read topic {identity} from the cluster: {topic}")
        return topic

    def update(
        self,
        identity: str,
        old: Topic,
        new: Topic,
        context: OperationContext | None = None,
    ) -> TopicUpdate:
        """Move a topic from ``old`` to ``new``.

        The replication factor is changed and fully settled first, then the
        partition count, then the configuration. The update ends with a
        convergence wait on the whole topic, unless the last leg already
        ended with one.

        Raises
        ------
        ValidationError
            Raised, before any gateway call, if the partition count would
            decrease or an immutable field changed.
        """
        validate_topic(new)
        if new.name != identity or old.name != identity:
            raise ValidationError(
                f"topic name is immutable; cannot rename {old.name} to "
                f"{new.name}",
                resource=identity,
            )
        if new.cluster_id != old.cluster_id:
            raise ValidationError(
                "cluster_id is immutable; the topic must be recreated",
                resource=identity,
            )
        if new.partitions < old.partitions:
            raise ValidationError(
                "cannot decrease the number of partitions of a topic "
                f"(from {old.partitions} to {new.partitions})",
                resource=identity,
            )

        cluster_id = new.cluster_id
        legs: list[str] = []
        # Most recent topic_probe result not followed by another mutation.
        settled: ConvergenceOutcome | None = None
        with resource_context(identity):
            if new.replication_factor != old.replication_factor:
                if new.placement_constrained:
                    self.logger.info(
                        f"Topic {identity} has placement constraints; "
                        "skipping replication_factor update"
                    )
                elif new.replication_factor == 0:
                    self.logger.info(
                        f"Topic {identity} no longer sets a "
                        "replication_factor; leaving replicas as they are"
                    )
                else:
                    self.logger.info(
                        f"Updating replication_factor of {identity} from "
                        f"{old.replication_factor} to "
                        f"{new.replication_factor}"
                    )
                    self.gateway.update_replication_factor(
                        cluster_id, identity, new.replication_factor
                    )
                    legs.append("replication_factor")
                    self._wait(
                        identity,
                        replication_factor_probe(
                            self.gateway, cluster_id, identity, self.logger
                        ),
                        pending=(UPDATING,),
                        description="replication_factor to update",
                        context=context,
                    )
                    # Partitions are not grown until this leg settles.
                    settled = self._wait_for_topic(
                        dataclasses.replace(new, partitions=old.partitions),
                        context,
                    )

            if new.partitions != old.partitions:
                self.logger.info(
                    f"Updating partitions of {identity} from "
                    f"{old.partitions} to {new.partitions}"
                )
                self.gateway.update_partitions(
                    cluster_id, identity, new.partitions
                )
                legs.append("partitions")
                settled = self._wait_for_topic(new, context)

            if dict(new.config) != dict(old.config):
                self.logger.info(f"Updating config of {identity}")
                self.gateway.update_config(
                    cluster_id, identity, dict(new.config)
                )
                legs.append("config")
                settled = None

            if settled is None:
                settled = self._wait_for_topic(new, context)

        self.logger.info(
            f"Updated topic {identity} ({', '.join(legs) or 'no changes'})"
        )
        return TopicUpdate(legs=tuple(legs), observation=settled.observation)

    def delete(
        self,
        identity: str,
        cluster_id: str,
        context: OperationContext | None = None,
    ) -> None:
        """Delete a topic and wait until the cluster no longer reports it.

        A topic that is already gone is not an error.
        """
        self.logger.info(f"Deleting topic {identity}")
        with resource_context(identity):
            try:
                self.gateway.delete_topic(cluster_id, identity)
            except ResourceNotFound:
                self.logger.info(f"Topic {identity} is already deleted")
                return
            self._wait(
                identity,
                delete_probe(self.gateway, cluster_id, identity, self.logger),
                pending=(DELETING,),
                description="to be deleted",
                context=context,
            )
        self.logger.info(f"Topic {identity} deleted")

    def _wait_for_topic(
        self, expected: Topic, context: OperationContext | None
    ) -> ConvergenceOutcome:
        return self._wait(
            expected.name,
            topic_probe(self.gateway, expected, self.logger),
            pending=(UPDATING,),
            description="to become ready",
            context=context,
        )

    def _wait(
        self,
        resource: str,
        refresh: RefreshFunc,
        *,
        pending: tuple[str, ...],
        description: str,
        context: OperationContext | None,
    ) -> ConvergenceOutcome:
        task = ConvergenceTask(
            resource=resource,
            refresh=refresh,
            pending=pending,
            target=(READY,),
            settings=self.settings,
            description=description,
        )
        return wait_for_state(task, context=context, logger=self.logger)
