"""Kopf handlers for ConfluentTopic resources."""

__all__ = (
    "check_topic",
    "compare_topics",
    "create_topic",
    "delete_topic",
    "parse_topic_spec",
    "update_topic",
)

from typing import Any

import kopf

from confluentresourceoperator import state
from confluentresourceoperator.errors import ResourceNotFound
from confluentresourceoperator.gateway import Topic
from confluentresourceoperator.handlers.common import (
    API_GROUP,
    API_VERSION,
    drift_status,
    get_gateway,
    get_int,
    operation_context,
    recorded_identity,
)
from confluentresourceoperator.topics import TopicReconciler

PLURAL = "confluenttopics"


def parse_topic_spec(spec: dict[str, Any], name: str) -> Topic:
    """Build the desired topic from a ConfluentTopic spec.

    Parameters
    ----------
    spec : dict
        The ``spec`` field of the ``ConfluentTopic`` resource.
    name : str
        The resource name, used as the topic name when ``spec.name`` is not
        set.

    Returns
    -------
    Topic
        The desired topic.
    """
    config = spec.get("config") or {}
    return Topic(
        name=spec.get("name") or name,
        cluster_id=spec.get("clusterId", ""),
        partitions=get_int(spec, "partitions"),
        replication_factor=get_int(spec, "replicationFactor"),
        config={str(key): str(value) for key, value in config.items()},
    )


def _reconciler(logger: Any) -> TopicReconciler:
    return TopicReconciler(
        get_gateway(), settings=state.poll_settings, logger=logger
    )


@kopf.on.create(API_GROUP, API_VERSION, PLURAL)  # type: ignore[arg-type]
def create_topic(
    *,
    spec: dict[str, Any],
    name: str,
    logger: Any,
    **kwargs: Any,
) -> dict[str, Any]:
    """Handle creation of a ConfluentTopic by creating the Kafka topic.

    The returned identity is stored by kopf in ``status.create_topic``.
    """
    desired = parse_topic_spec(spec, name)
    identity = _reconciler(logger).create(desired)
    return {"identity": identity}


@kopf.on.update(  # type: ignore[arg-type]
    API_GROUP, API_VERSION, PLURAL, field="spec"
)
def update_topic(
    *,
    old: dict[str, Any],
    new: dict[str, Any],
    name: str,
    status: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> dict[str, Any]:
    """Handle a change to a ConfluentTopic spec.

    Parameters
    ----------
    old : dict
        The previous ``spec``.
    new : dict
        The new ``spec``.
    name : str
        The name of the ``ConfluentTopic`` resource.
    status : dict
        The resource status, holding the recorded topic identity.
    logger : Any
        The kopf logger.
    **kwargs : Any
        Additional keyword arguments provided by kopf.
    """
    old_topic = parse_topic_spec(old, name)
    new_topic = parse_topic_spec(new, name)
    identity = recorded_identity(status, "create_topic") or old_topic.name
    result = _reconciler(logger).update(
        identity, old_topic, new_topic, context=operation_context()
    )
    return {
        "identity": identity,
        "legs": list(result.legs),
        "partitions": result.observation.partitions,
        "replicationFactor": result.observation.replication_factor,
    }


@kopf.on.delete(API_GROUP, API_VERSION, PLURAL)  # type: ignore[arg-type]
def delete_topic(
    *,
    spec: dict[str, Any],
    name: str,
    status: dict[str, Any],
    logger: Any,
    **kwargs: Any,
) -> None:
    """Handle deletion of a ConfluentTopic by deleting the Kafka topic."""
    topic = parse_topic_spec(spec, name)
    identity = recorded_identity(status, "create_topic") or topic.name
    _reconciler(logger).delete(
        identity, topic.cluster_id, context=operation_context()
    )


@kopf.timer(  # type: ignore[arg-type]
    API_GROUP,
    API_VERSION,
    PLURAL,
    interval=state.drift_check_interval,
    idle=state.drift_check_interval,
)
def check_topic(
    *,
    spec: dict[str, Any],
    name: str,
    status: dict[str, Any],
    patch: kopf.Patch,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Periodically compare the Kafka topic with the ConfluentTopic spec and
    record any drift in ``status.drift``.
    """
    desired = parse_topic_spec(spec, name)
    identity = recorded_identity(status, "create_topic")
    if identity is None:
        # Not created yet.
        return

    try:
        actual = _reconciler(logger).read(identity, desired.cluster_id)
    except ResourceNotFound:
        logger.warning(f"Topic {identity} no longer exists on the cluster")
        patch.status["drift"] = drift_status(["topic does not exist"])
        return

    patch.status["drift"] = drift_status(compare_topics(desired, actual))


def compare_topics(desired: Topic, actual: Topic) -> list[str]:
    """List the ways ``actual`` differs from ``desired``."""
    reasons = []
    if actual.partitions != desired.partitions:
        reasons.append(
            f"partitions: {actual.partitions} != {desired.partitions}"
        )
    if (
        not desired.placement_constrained
        and desired.replication_factor
        and actual.replication_factor != desired.replication_factor
    ):
        reasons.append(
            f"replicationFactor: {actual.replication_factor} != "
            f"{desired.replication_factor}"
        )
    for key, value in sorted(desired.config.items()):
        actual_value = actual.config.get(key)
        if actual_value != value:
            reasons.append(f"config.{key}: {actual_value} != {value}")
    return reasons
