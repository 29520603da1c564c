"""Shared fixtures: an in-memory, call-recording cluster gateway."""

from __future__ import annotations

import dataclasses
from typing import Any

import pytest

from confluentresourceoperator.errors import ResourceNotFound
from confluentresourceoperator.gateway import Partition, Topic
from confluentresourceoperator.identity import ResourcePattern, ResourceScope
from confluentresourceoperator.poller import PollSettings


class FakeGateway:
    """A cluster that applies changes lazily.

    ``rf_lag``, ``partition_lag`` and ``delete_lag`` set how many probe
    reads still report the old state after the corresponding mutation.
    ``failures`` maps a method name to an exception it raises.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.topics: dict[tuple[str, str], Topic] = {}
        self.bindings: dict[
            tuple[str, str, ResourceScope], list[ResourcePattern]
        ] = {}
        self.failures: dict[str, Exception] = {}
        self.rf_lag = 0
        self.partition_lag = 0
        self.delete_lag = 0
        self._rf_targets: dict[tuple[str, str], tuple[int, int]] = {}
        self._partition_targets: dict[tuple[str, str], tuple[int, int]] = {}
        self._deleting: dict[tuple[str, str], int] = {}

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def add_topic(self, topic: Topic) -> None:
        """Put a topic on the cluster without recording a call."""
        self.topics[(topic.cluster_id, topic.name)] = dataclasses.replace(
            topic, config=dict(topic.config)
        )

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def _topic(self, cluster_id: str, name: str) -> Topic:
        try:
            return self.topics[(cluster_id, name)]
        except KeyError:
            raise ResourceNotFound(f"topic {name} not found") from None

    # Role bindings

    def lookup_binding(self, principal, role, scope):
        self._record("lookup_binding", principal, role, scope)
        return list(self.bindings.get((principal, role, scope), []))

    def bind(self, principal, role, scope, pattern=None):
        self._record("bind", principal, role, scope, pattern)
        patterns = self.bindings.setdefault((principal, role, scope), [])
        if pattern is None:
            pattern = ResourcePattern("Cluster", scope.cluster_id)
        if pattern not in patterns:
            patterns.append(pattern)

    def unbind(self, principal, role, scope, pattern=None):
        self._record("unbind", principal, role, scope, pattern)
        key = (principal, role, scope)
        if key not in self.bindings:
            raise ResourceNotFound(f"{principal} does not hold {role}")
        if pattern is None:
            del self.bindings[key]
        else:
            self.bindings[key] = [
                p for p in self.bindings[key] if p != pattern
            ]
            if not self.bindings[key]:
                del self.bindings[key]

    # Topics

    def get_topic(self, cluster_id, name):
        self._record("get_topic", cluster_id, name)
        key = (cluster_id, name)
        if key in self._deleting:
            remaining = self._deleting[key]
            if remaining > 0:
                self._deleting[key] = remaining - 1
            else:
                del self._deleting[key]
                self.topics.pop(key, None)
        topic = self._topic(cluster_id, name)
        return dataclasses.replace(topic, config=dict(topic.config))

    def create_topic(self, topic):
        self._record("create_topic", topic)
        self.add_topic(topic)

    def update_replication_factor(self, cluster_id, name, replication_factor):
        self._record(
            "update_replication_factor", cluster_id, name, replication_factor
        )
        self._topic(cluster_id, name)
        self._rf_targets[(cluster_id, name)] = (
            replication_factor,
            self.rf_lag,
        )

    def update_partitions(self, cluster_id, name, partitions):
        self._record("update_partitions", cluster_id, name, partitions)
        self._topic(cluster_id, name)
        self._partition_targets[(cluster_id, name)] = (
            partitions,
            self.partition_lag,
        )

    def update_config(self, cluster_id, name, config):
        self._record("update_config", cluster_id, name, dict(config))
        self._topic(cluster_id, name).config = dict(config)

    def delete_topic(self, cluster_id, name):
        self._record("delete_topic", cluster_id, name)
        self._topic(cluster_id, name)
        self._deleting[(cluster_id, name)] = self.delete_lag

    def is_replication_factor_updating(self, cluster_id, name):
        self._record("is_replication_factor_updating", cluster_id, name)
        key = (cluster_id, name)
        if key not in self._rf_targets:
            return False
        target, remaining = self._rf_targets[key]
        if remaining > 0:
            self._rf_targets[key] = (target, remaining - 1)
            return True
        del self._rf_targets[key]
        self._topic(cluster_id, name).replication_factor = target
        return False

    def list_partitions(self, cluster_id, name):
        self._record("list_partitions", cluster_id, name)
        topic = self._topic(cluster_id, name)
        key = (cluster_id, name)
        if key in self._partition_targets:
            target, remaining = self._partition_targets[key]
            if remaining > 0:
                self._partition_targets[key] = (target, remaining - 1)
            else:
                del self._partition_targets[key]
                topic.partitions = target
        return [Partition(partition_id=i) for i in range(topic.partitions)]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fast_settings() -> PollSettings:
    """Poll settings that keep convergence waits short in tests."""
    return PollSettings(
        timeout=2.0, delay=0.0, poll_interval=0.01, min_timeout=0.0
    )
