# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real API keys. Put them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKSYNC_APP_NAME": "App display name (default: tasksync).",
    "TASKSYNC_LOG_LEVEL": "Console logging level (default: INFO). The log file is always DEBUG.",
    "TASKSYNC_DATA_DIR": "Local data directory for logs and migration reports (default: .local/tasksync).",
    # Identity
    "TASKSYNC_USER_ID": "Owner id used for every request (default: default-user).",
    # Transports
    "TASKSYNC_PRIMARY_TRANSPORT": (
        "graphql | rest | memory (default: graphql when endpoint and key are set, else rest)."
    ),
    "TASKSYNC_FALLBACK_ENABLED": "Try the other transport when the primary fails (default: true).",
    "TASKSYNC_REST_BASE_URL": "REST API base URL (default: http://localhost:5000/api).",
    "TASKSYNC_GRAPHQL_ENDPOINT": "GraphQL endpoint URL. Legacy name: VITE_APPSYNC_ENDPOINT.",
    "TASKSYNC_GRAPHQL_API_KEY": "API key sent as x-api-key. Legacy name: VITE_APPSYNC_API_KEY.",
    "TASKSYNC_AWS_REGION": "Region of the GraphQL API (default: ap-northeast-1). Legacy: VITE_AWS_REGION.",
    "TASKSYNC_HTTP_TIMEOUT_SECONDS": "Per-request HTTP timeout (default: 10).",
    # Sync tuning
    "TASKSYNC_STALE_AFTER_SECONDS": "Age after which a cached list is refetched on read (default: 10).",
    "TASKSYNC_INVALIDATE_DELAY_SECONDS": "Delay before refetching after a committed mutation (default: 1).",
    "TASKSYNC_MUTATION_TIMEOUT_SECONDS": "Network timeout before an optimistic edit rolls back (default: 15).",
    "TASKSYNC_REFRESH_INTERVAL_SECONDS": "Background refresh period (default: 30).",
    "TASKSYNC_NOTIFICATION_TTL_SECONDS": "How long success notifications stay active (default: 4).",
}
