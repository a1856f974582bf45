"""Centralized constants"""

# Redis
DEFAULT_REDIS_URL = "redis://localhost:6379/0"
REDIS_KEY_TTL_SECONDS = 30 * 24 * 60 * 60  # 30 days
MAX_CAS_ATTEMPTS = 10

# Railway
DEFAULT_RAILWAY_API_URL = "https://backboard.railway.app/graphql/v2"
DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS = 30

# Limits
MAX_NODES_PER_WORKFLOW = 1000
MAX_CONCURRENT_DEPLOYMENTS = 8
RUN_LIST_LIMIT = 50

# Retryable HTTP Status Codes
RETRYABLE_HTTP_STATUS_CODES = {500, 502, 503, 504, 408, 429}

# Default graph for newly created workflows
DEFAULT_INPUT_NODE_NAME = "Input Task"
DEFAULT_ROOT_NODE_NAME = "Output Task"

# Display labels
NOT_STARTED_LABEL = "NOT STARTED"
DEPLOYING_LABEL = "STARTED"
