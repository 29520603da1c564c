"""Kopf handlers for the confluent-resource-operator.

Run the operator with ``kopf run -m confluentresourceoperator.handlers``.
"""

__all__ = (
    "check_resource_binding",
    "check_role_binding",
    "check_topic",
    "create_resource_binding",
    "create_role_binding",
    "create_topic",
    "delete_resource_binding",
    "delete_role_binding",
    "delete_topic",
    "start_operator",
    "update_resource_binding",
    "update_role_binding",
    "update_topic",
)

from confluentresourceoperator.handlers.rolebindings import (
    check_resource_binding,
    check_role_binding,
    create_resource_binding,
    create_role_binding,
    delete_resource_binding,
    delete_role_binding,
    update_resource_binding,
    update_role_binding,
)
from confluentresourceoperator.handlers.topics import (
    check_topic,
    create_topic,
    delete_topic,
    update_topic,
)
from confluentresourceoperator.startup import start_operator
