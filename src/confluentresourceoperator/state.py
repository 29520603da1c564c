"""Constructed (cached) state as module-level attributes."""

from __future__ import annotations

import os

from confluentresourceoperator.gateway import ClusterGateway
from confluentresourceoperator.poller import PollSettings

namespace = os.environ.get("CRO_NAMESPACE", "confluent")
"""The name of the Kubernetes namespace monitored by this operator."""

gateway_factory = os.environ.get("CRO_GATEWAY_FACTORY", "")
"""Import path (``module:attribute``) of the callable that builds the
cluster gateway from the gateway settings.
"""

gateway_secret = os.environ.get("CRO_GATEWAY_SECRET", "confluent-gateway")
"""Name of the Secret holding the gateway settings (endpoints and
credentials), in `namespace`.
"""

poll_settings = PollSettings(
    timeout=float(os.environ.get("CRO_CONVERGENCE_TIMEOUT", "120")),
    delay=float(os.environ.get("CRO_POLL_DELAY", "1")),
    poll_interval=float(os.environ.get("CRO_POLL_INTERVAL", "1")),
    min_timeout=float(os.environ.get("CRO_MIN_TIMEOUT", "2")),
)
"""Timing of every convergence wait."""

operation_timeout = float(os.environ.get("CRO_OPERATION_TIMEOUT", "600"))
"""Deadline, in seconds, of a single create, update or delete operation."""

drift_check_interval = float(os.environ.get("CRO_DRIFT_CHECK_INTERVAL", "300"))
"""Seconds between checks that a managed resource still matches its spec."""

gateway: ClusterGateway | None = None
"""The cluster gateway, built when the operator starts up."""
