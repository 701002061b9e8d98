"""TrueNAS JSON-RPC API constants."""

ENDPOINT = "api/current"
JSONRPC_VERSION = "2.0"

# Authentication and subscriptions
METHOD_LOGIN = "auth.login"
METHOD_LOGIN_WITH_API_KEY = "auth.login_with_api_key"
METHOD_SUBSCRIBE = "core.subscribe"
COLLECTION_JOBS = "core.get_jobs"
NOTIFICATION_COLLECTION_UPDATE = "collection_update"

# Certificates
METHOD_CERTIFICATE_CREATE = "certificate.create"
METHOD_CERTIFICATE_DELETE = "certificate.delete"
METHOD_CERTIFICATE_CHOICES = "app.certificate_choices"
CREATE_TYPE_IMPORTED = "CERTIFICATE_CREATE_IMPORTED"

# Applications
METHOD_APP_QUERY = "app.query"
METHOD_APP_CONFIG = "app.config"
METHOD_APP_UPDATE = "app.update"

# Services
METHOD_FTP_CONFIG = "ftp.config"
METHOD_FTP_UPDATE = "ftp.update"
METHOD_GENERAL_CONFIG = "system.general.config"
METHOD_GENERAL_UPDATE = "system.general.update"
METHOD_UI_RESTART = "system.general.ui_restart"

# Job states
JOB_STATE_WAITING = "WAITING"
JOB_STATE_RUNNING = "RUNNING"
JOB_STATE_SUCCESS = "SUCCESS"
JOB_STATE_FAILED = "FAILED"
JOB_STATE_ABORTED = "ABORTED"

TERMINAL_JOB_STATES = frozenset({JOB_STATE_SUCCESS, JOB_STATE_FAILED, JOB_STATE_ABORTED})

DEFAULT_TIMEOUT_SECONDS = 10
