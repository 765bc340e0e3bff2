"""Constants for the ImagePullSecret Operator."""

# API Group used for labels and annotations owned by the operator
API_GROUP = "imagepullsecret.cloud37.dev"

# Watched resources
POD_VERSION = "v1"
POD_PLURAL = "pods"

# Resource Kinds
KIND_POD = "Pod"
KIND_NAMESPACE = "Namespace"
KIND_SECRET = "Secret"

# Labels
LABEL_MANAGED_BY = f"{API_GROUP}/managed-by"

# Field Manager
FIELD_MANAGER = "imagepullsecret-operator"

# Namespace phases
NAMESPACE_PHASE_TERMINATING = "Terminating"

# Event Reasons
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_MANAGED_RESOURCE_CREATED = "ManagedResourceCreated"
EVENT_REASON_MANAGED_RESOURCE_DELETED = "ManagedResourceDeleted"
EVENT_REASON_MANAGED_RESOURCE_CONFLICT = "ManagedResourceConflict"
