"""Label, annotation and default values shared by the reconcilers."""

SUBSET_LABEL_KEY = "subset"
SUBSET_LABEL_DEFAULT_VALUE = "stable"

TENANT_LABEL_KEY = "tenant"
CHANNEL_LABEL_KEY = "channel"

AGENT_ID_LABEL_KEY = "agent-id"

# Workloads opt in to discovery with this label.
DISCOVERY_LABEL_KEY = "agentoperator/discover"
DISCOVERY_LABEL_VALUE = "true"

CAPABILITIES_PATH_ANNOTATION = "agentoperator/capabilities-path"
DEFAULT_CAPABILITIES_PATH = ".well-known/capabilities.json"

CLUSTER_DOMAIN = "svc.cluster.local"

API_VERSION = "agentoperator.io/v1"
