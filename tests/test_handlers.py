"""Tests for the kopf handlers in confluentresourceoperator.handlers."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import kopf
import pytest
import structlog
import yaml

from confluentresourceoperator import state
from confluentresourceoperator.errors import ValidationError
from confluentresourceoperator.gateway import Topic
from confluentresourceoperator.handlers import (
    check_resource_binding,
    check_role_binding,
    check_topic,
    create_resource_binding,
    create_role_binding,
    create_topic,
    delete_resource_binding,
    delete_role_binding,
    delete_topic,
    update_resource_binding,
    update_role_binding,
    update_topic,
)
from confluentresourceoperator.handlers.common import get_gateway, get_int
from confluentresourceoperator.handlers.topics import (
    compare_topics,
    parse_topic_spec,
)

TOPIC_MANIFEST = """
apiVersion: confluentresourceoperator.io/v1alpha1
kind: ConfluentTopic
metadata:
  name: orders
  namespace: confluent
spec:
  clusterId: lkc-abc
  partitions: 3
  replicationFactor: 3
  config:
    cleanup.policy: delete
    retention.ms: 86400000
"""

ROLE_BINDING_MANIFEST = """
apiVersion: confluentresourceoperator.io/v1alpha1
kind: ConfluentRoleBinding
metadata:
  name: alice-schema-registry
  namespace: confluent
spec:
  principal: User:alice
  role: SystemAdmin
  clusterId: lkc-abc
  schemaRegistryClusterId: sr-1
"""

RESOURCE_BINDING_MANIFEST = """
apiVersion: confluentresourceoperator.io/v1alpha1
kind: ConfluentResourceBinding
metadata:
  name: analytics-orders
  namespace: confluent
spec:
  principal: Group:analytics
  role: DeveloperRead
  clusterId: lkc-abc
  resourceType: Topic
  name: orders-
  patternType: PREFIXED
"""


@pytest.fixture(autouse=True)
def operator_state(monkeypatch, gateway, fast_settings):
    monkeypatch.setattr(state, "gateway", gateway)
    monkeypatch.setattr(state, "poll_settings", fast_settings)
    monkeypatch.setattr(state, "operation_timeout", 10.0)


@pytest.fixture
def logger() -> Any:
    return structlog.getLogger(__name__)


@pytest.fixture
def patch() -> SimpleNamespace:
    return SimpleNamespace(status={})


def load_spec(manifest: str) -> dict[str, Any]:
    return yaml.safe_load(manifest)["spec"]


def test_parse_topic_spec() -> None:
    topic = parse_topic_spec(load_spec(TOPIC_MANIFEST), "orders")
    assert topic == Topic(
        name="orders",
        cluster_id="lkc-abc",
        partitions=3,
        replication_factor=3,
        config={"cleanup.policy": "delete", "retention.ms": "86400000"},
    )


def test_parse_topic_spec_name_override() -> None:
    spec = load_spec(TOPIC_MANIFEST)
    spec["name"] = "orders.v2"
    assert parse_topic_spec(spec, "orders").name == "orders.v2"


def test_parse_topic_spec_bad_partitions() -> None:
    spec = load_spec(TOPIC_MANIFEST)
    spec["partitions"] = "many"
    with pytest.raises(ValidationError):
        parse_topic_spec(spec, "orders")


def test_get_int_default() -> None:
    assert get_int({}, "partitions", 1) == 1
    assert get_int({"partitions": "6"}, "partitions") == 6


def test_get_gateway_before_startup(monkeypatch) -> None:
    monkeypatch.setattr(state, "gateway", None)
    with pytest.raises(kopf.TemporaryError):
        get_gateway()


def test_topic_lifecycle(gateway, logger, patch) -> None:
    spec = load_spec(TOPIC_MANIFEST)

    result = create_topic(spec=spec, name="orders", logger=logger)
    assert result == {"identity": "orders"}
    status = {"create_topic": result}

    new_spec = dict(spec, partitions=6)
    gateway.partition_lag = 1
    result = update_topic(
        old=spec, new=new_spec, name="orders", status=status, logger=logger
    )
    assert result == {
        "identity": "orders",
        "legs": ["partitions"],
        "partitions": 6,
        "replicationFactor": 3,
    }

    check_topic(
        spec=new_spec, name="orders", status=status, patch=patch, logger=logger
    )
    assert patch.status["drift"]["drifted"] is False
    assert patch.status["drift"]["reasons"] == []

    delete_topic(spec=new_spec, name="orders", status=status, logger=logger)
    assert gateway.topics == {}


def test_update_topic_partition_decrease(gateway, logger) -> None:
    spec = load_spec(TOPIC_MANIFEST)
    create_topic(spec=spec, name="orders", logger=logger)

    with pytest.raises(kopf.PermanentError):
        update_topic(
            old=spec,
            new=dict(spec, partitions=1),
            name="orders",
            status={"create_topic": {"identity": "orders"}},
            logger=logger,
        )
    assert gateway.call_names() == ["create_topic"]


def test_check_topic_reports_drift(gateway, logger, patch) -> None:
    spec = load_spec(TOPIC_MANIFEST)
    create_topic(spec=spec, name="orders", logger=logger)
    gateway.topics[("lkc-abc", "orders")].config["cleanup.policy"] = "compact"

    check_topic(
        spec=spec,
        name="orders",
        status={"create_topic": {"identity": "orders"}},
        patch=patch,
        logger=logger,
    )

    assert patch.status["drift"]["drifted"] is True
    assert patch.status["drift"]["reasons"] == [
        "config.cleanup.policy: compact != delete"
    ]


def test_check_topic_missing(logger, patch) -> None:
    check_topic(
        spec=load_spec(TOPIC_MANIFEST),
        name="orders",
        status={"create_topic": {"identity": "orders"}},
        patch=patch,
        logger=logger,
    )
    assert patch.status["drift"]["reasons"] == ["topic does not exist"]


def test_check_topic_before_create(gateway, logger, patch) -> None:
    check_topic(
        spec=load_spec(TOPIC_MANIFEST),
        name="orders",
        status={},
        patch=patch,
        logger=logger,
    )
    assert patch.status == {}
    assert gateway.calls == []


def test_compare_topics_ignores_unset_replication_factor() -> None:
    desired = Topic(name="orders", cluster_id="lkc-abc", partitions=3)
    actual = Topic(
        name="orders", cluster_id="lkc-abc", partitions=3, replication_factor=3
    )
    assert compare_topics(desired, actual) == []


def update_handler_ids() -> dict[Any, str]:
    """Map each update handler to the id kopf stores its result under."""
    registry = kopf.get_default_registry()
    return {
        handler.fn: handler.id
        for handler in registry._changing.get_all_handlers()
        if handler.fn
        in (update_role_binding, update_resource_binding, update_topic)
    }


def test_update_handler_status_keys() -> None:
    assert update_handler_ids() == {
        update_role_binding: "update_role_binding/spec",
        update_resource_binding: "update_resource_binding/spec",
        update_topic: "update_topic/spec",
    }


def test_role_binding_lifecycle(gateway, logger, patch) -> None:
    spec = load_spec(ROLE_BINDING_MANIFEST)
    update_key = update_handler_ids()[update_role_binding]

    result = create_role_binding(spec=spec, logger=logger)
    assert result == {
        "identity": "SchemaRegistry:sr-1|lkc-abc|User:alice|SystemAdmin"
    }
    status = {"create_role_binding": result}

    new_spec = dict(spec, role="ResourceOwner")
    result = update_role_binding(
        old=spec, new=new_spec, status=status, logger=logger
    )
    assert result == {
        "identity": "SchemaRegistry:sr-1|lkc-abc|User:alice|ResourceOwner"
    }
    status[update_key] = result

    check_role_binding(
        spec=new_spec, status=status, patch=patch, logger=logger
    )
    assert patch.status["drift"]["drifted"] is False

    delete_role_binding(spec=new_spec, status=status, logger=logger)
    assert gateway.bindings == {}
    assert gateway.call_names() == [
        "bind",
        "unbind",
        "bind",
        "lookup_binding",
        "unbind",
    ]


def test_role_binding_updated_twice(gateway, logger) -> None:
    spec = load_spec(ROLE_BINDING_MANIFEST)
    update_key = update_handler_ids()[update_role_binding]
    status = {
        "create_role_binding": create_role_binding(spec=spec, logger=logger)
    }

    second_spec = dict(spec, role="ResourceOwner")
    status[update_key] = update_role_binding(
        old=spec, new=second_spec, status=status, logger=logger
    )
    third_spec = dict(spec, role="UserAdmin")
    status[update_key] = update_role_binding(
        old=second_spec, new=third_spec, status=status, logger=logger
    )

    roles = {role for (_, role, _) in gateway.bindings}
    assert roles == {"UserAdmin"}

    delete_role_binding(spec=third_spec, status=status, logger=logger)
    assert gateway.bindings == {}


def test_resource_binding_update_then_delete(gateway, logger) -> None:
    spec = load_spec(RESOURCE_BINDING_MANIFEST)
    update_key = update_handler_ids()[update_resource_binding]
    status = {
        "create_resource_binding": create_resource_binding(
            spec=spec, logger=logger
        )
    }

    new_spec = dict(spec, patternType="LITERAL", name="orders")
    status[update_key] = update_resource_binding(
        old=spec, new=new_spec, status=status, logger=logger
    )
    assert status[update_key]["identity"] == (
        "lkc-abc|Group:analytics|DeveloperRead|Topic|orders|LITERAL"
    )

    delete_resource_binding(spec=new_spec, status=status, logger=logger)
    assert gateway.bindings == {}


def test_role_binding_rejects_ambiguous_scope(gateway, logger) -> None:
    spec = dict(load_spec(ROLE_BINDING_MANIFEST), connectClusterId="c-1")
    with pytest.raises(kopf.PermanentError):
        create_role_binding(spec=spec, logger=logger)
    assert gateway.calls == []


def test_resource_binding_drift(gateway, logger, patch) -> None:
    spec = load_spec(RESOURCE_BINDING_MANIFEST)
    result = create_resource_binding(spec=spec, logger=logger)
    status = {"create_resource_binding": result}
    assert result["identity"] == (
        "lkc-abc|Group:analytics|DeveloperRead|Topic|orders-|PREFIXED"
    )
    gateway.bindings.clear()

    check_resource_binding(
        spec=spec, status=status, patch=patch, logger=logger
    )

    assert patch.status["drift"]["drifted"] is True
    assert len(patch.status["drift"]["reasons"]) == 1

    delete_resource_binding(spec=spec, status=status, logger=logger)
