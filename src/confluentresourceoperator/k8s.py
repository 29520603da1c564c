"""Helpers for interacting with Kubernetes APIs."""

__all__ = (
    "create_k8sclient",
    "decode_secret_field",
    "get_gateway_settings",
    "read_secret",
)

import base64
import json
from typing import Any

import kubernetes


def create_k8sclient() -> kubernetes.client:
    """Get a Kubernetes client configured with available cluster
    authentication.

    In-cluster service account credentials are used when the operator runs
    in a Pod; otherwise the local kubectl config is loaded.
    """
    try:
        kubernetes.config.load_incluster_config()
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
    return kubernetes.client


def read_secret(
    *, namespace: str, name: str, k8s_client: Any
) -> dict[str, Any]:
    """Read a Secret as its raw manifest.

    Parameters
    ----------
    namespace : `str`
        The Kubernetes namespace of the Secret.
    name : `str`
        The name of the Secret.
    k8s_client
        A Kubernetes client (see `create_k8sclient`).

    Returns
    -------
    secret : `dict`
        The Secret manifest. Values under ``data`` are still base64-encoded.
    """
    api = k8s_client.CoreV1Api()
    response = api.read_namespaced_secret(
        name=name, namespace=namespace, _preload_content=False
    )
    return json.loads(response.data)


def decode_secret_field(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


def get_gateway_settings(
    *,
    namespace: str,
    name: str,
    k8s_client: Any,
) -> dict[str, str]:
    """Read the gateway settings Secret.

    The Secret's keys are whatever the configured gateway factory expects,
    typically ``bootstrap_servers``, ``username`` and ``password``.

    Returns
    -------
    settings : `dict`
        The Secret's ``data`` with every value base64-decoded.
    """
    secret = read_secret(namespace=namespace, name=name, k8s_client=k8s_client)
    return {
        key: decode_secret_field(value)
        for key, value in (secret.get("data") or {}).items()
    }
