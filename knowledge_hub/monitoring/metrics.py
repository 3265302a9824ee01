"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

query_counter = Counter("hub_queries_total",
                        "Total number of questions and searches processed")
query_errors_total = Counter(
    "hub_query_errors_total", "Total number of failed questions")
query_latency_seconds = Histogram(
    "hub_query_latency_seconds", "Query latency in seconds", buckets=[0.1, 0.5, 1.0, 2.0, 5.0])

chat_turns_total = Counter("hub_chat_turns_total", "Total number of chat turns submitted")
chat_turn_errors_total = Counter(
    "hub_chat_turn_errors_total", "Chat turns that failed during generation")
chat_sessions_created = Counter(
    "hub_chat_sessions_created_total", "Total number of chat sessions created")

versions_created_total = Counter(
    "hub_versions_created_total", "Total number of document versions created")
version_conflicts_total = Counter(
    "hub_version_conflicts_total", "Version number collisions detected during sequencing")

embedding_cache_hits = Counter(
    "hub_embedding_cache_hits_total", "Embedding lookups served from the in-process cache")
embedding_cache_misses = Counter(
    "hub_embedding_cache_misses_total", "Embedding lookups that went past the in-process cache")
embedding_refresh_failures_total = Counter(
    "hub_embedding_refresh_failures_total", "Best-effort document embedding refreshes that failed")

retrieval_degradations_total = Counter(
    "hub_retrieval_degradations_total", "Semantic retrievals that fell back to keyword search")

activity_log_failures_total = Counter(
    "hub_activity_log_failures_total", "Activity entries that could not be recorded")
