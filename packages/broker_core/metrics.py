"""Prometheus metrics definitions for the Broker Agent.

This module provides centralized metric definitions for observability.
Metrics are exported via the /metrics endpoint for Prometheus scraping.
"""

from prometheus_client import Counter, Gauge, Histogram  # type: ignore[import-not-found]

# Request metrics
HTTP_REQUESTS = Counter(
    "broker_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
HTTP_LATENCY = Histogram(
    "broker_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)

# Graph execution metrics
GRAPH_RUNS = Counter(
    "broker_graph_runs_total",
    "Graph runs by outcome",
    ["outcome"],
)
GRAPH_RUN_LATENCY = Histogram(
    "broker_graph_run_duration_seconds",
    "Graph run latency",
)
NODE_EXECUTIONS = Counter(
    "broker_node_executions_total",
    "Node executions",
    ["node", "outcome"],
)
SUSPENDED_THREADS = Gauge(
    "broker_threads_suspended",
    "Threads waiting for a confirmation",
)

# Collaborator metrics
LLM_CALLS = Counter(
    "broker_llm_calls_total",
    "LLM API calls",
    ["operation"],
)
LLM_LATENCY = Histogram(
    "broker_llm_call_duration_seconds",
    "LLM call latency",
    ["operation"],
)
TOOL_CALLS = Counter(
    "broker_tool_calls_total",
    "Tool invocations",
    ["tool", "status"],
)

# Business metrics
PURCHASES = Counter(
    "broker_purchases_total",
    "Purchase workflow transitions",
    ["kind", "outcome"],
)
