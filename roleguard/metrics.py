from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest


authz_cache_hit_total = Counter(
    "roleguard_authz_cache_hit_total",
    "Authorization cache hits",
    ["kind"],
)

authz_cache_miss_total = Counter(
    "roleguard_authz_cache_miss_total",
    "Authorization cache misses",
    ["kind"],
)

authz_store_queries_total = Counter(
    "roleguard_authz_store_queries_total",
    "Authorization store query count",
    ["operation"],
)

authz_decisions_total = Counter(
    "roleguard_authz_decisions_total",
    "Authorization decisions by entry point and outcome",
    ["entry_point", "decision"],
)

authz_pretend_decisions_total = Counter(
    "roleguard_authz_pretend_decisions_total",
    "Authorization decisions answered by pretend mode",
    ["entry_point"],
)


def observe_authz_cache_hit(kind: str) -> None:
    authz_cache_hit_total.labels(kind=kind).inc()


def observe_authz_cache_miss(kind: str) -> None:
    authz_cache_miss_total.labels(kind=kind).inc()


def observe_authz_store_query(operation: str, count: int = 1) -> None:
    if count > 0:
        authz_store_queries_total.labels(operation=operation).inc(count)


def observe_authz_decision(entry_point: str, decision: bool) -> None:
    authz_decisions_total.labels(entry_point=entry_point, decision="allow" if decision else "deny").inc()


def observe_authz_pretend_decision(entry_point: str) -> None:
    authz_pretend_decisions_total.labels(entry_point=entry_point).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
