"""Constants for the Exoscale IAM Operator."""

import os

# API Group
API_GROUP = "exoscale.crossplane.io"
API_VERSION = "v1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_IAM_KEY = "IAMKey"
KIND_PROVIDER_CONFIG = "ProviderConfig"

# Plurals
PLURAL_IAM_KEYS = "iamkeys"
PLURAL_PROVIDER_CONFIGS = "providerconfigs"

# Labels
LABEL_MANAGED_BY = f"{API_GROUP}/managed-by"
LABEL_RESOURCE_TYPE = f"{API_GROUP}/resource-type"
LABEL_OWNER_NAME = f"{API_GROUP}/owner-name"

# Annotations
ANNOTATION_EXTERNAL_NAME = "crossplane.io/external-name"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = "exoscale-iam-operator"
CONTROLLER_NAME = "exoscale-iam-operator"

# Default provider config name
DEFAULT_PROVIDER_CONFIG = "default"

# Connection secret keys
ACCESS_KEY_ID_NAME = "AWS_ACCESS_KEY_ID"
SECRET_ACCESS_KEY_NAME = "AWS_SECRET_ACCESS_KEY"

# Provider credentials secret keys
EXOSCALE_API_KEY_NAME = "EXOSCALE_API_KEY"
EXOSCALE_API_SECRET_NAME = "EXOSCALE_API_SECRET"

# Condition Types
COND_READY = "Ready"
COND_SYNCED = "Synced"

# Ready condition reasons
REASON_AVAILABLE = "Available"
REASON_CREATING = "Creating"
REASON_DELETING = "Deleting"
REASON_UNAVAILABLE = "Unavailable"
REASON_INVALID_CONFIGURATION = "InvalidConfiguration"
REASON_IMMUTABLE_FIELD_CHANGED = "ImmutableFieldChanged"
REASON_CREATE_FAILED = "CreateFailed"

# Synced condition reasons
REASON_RECONCILE_SUCCESS = "ReconcileSuccess"
REASON_RECONCILE_ERROR = "ReconcileError"

# Ready reasons that only change when the user corrects the resource spec
TERMINAL_REASONS = frozenset(
    {
        REASON_INVALID_CONFIGURATION,
        REASON_IMMUTABLE_FIELD_CHANGED,
        REASON_CREATE_FAILED,
    }
)

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_KEY_CREATED = "IAMKeyCreated"
EVENT_REASON_KEY_ADOPTED = "IAMKeyAdopted"
EVENT_REASON_KEY_RECREATED = "IAMKeyRecreated"
EVENT_REASON_KEY_REVOKED = "IAMKeyRevoked"
EVENT_REASON_KEY_ALREADY_DELETED = "IAMKeyAlreadyDeleted"
EVENT_REASON_DRIFT_DETECTED = "DriftDetected"

# Reconciliation settings
RESYNC_INTERVAL_SECONDS = float(os.getenv("RESYNC_INTERVAL_SECONDS", "600"))
RECONCILE_TIMEOUT_SECONDS = float(os.getenv("RECONCILE_TIMEOUT_SECONDS", "60"))
STATUS_WRITE_RETRIES = int(os.getenv("STATUS_WRITE_RETRIES", "3"))
RETRY_BASE_DELAY_SECONDS = float(os.getenv("RETRY_BASE_DELAY_SECONDS", "1"))
RETRY_MAX_DELAY_SECONDS = float(os.getenv("RETRY_MAX_DELAY_SECONDS", "300"))
