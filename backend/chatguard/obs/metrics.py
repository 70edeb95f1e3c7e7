"""Central registry for Prometheus metrics used by the moderation engine."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

MODERATION_VIOLATIONS = Counter(
	"chatguard_moderation_violations_total",
	"Violations emitted by the detector pipeline",
	["type", "severity"],
)

MODERATION_ANALYSES = Counter(
	"chatguard_moderation_analyses_total",
	"Messages analyzed, labelled by resolved action",
	["action"],
)

MODERATION_ACTIONS = Counter(
	"chatguard_moderation_actions_total",
	"Moderation actions executed",
	["action", "result"],
)

DETECTOR_FAILURES = Counter(
	"chatguard_detector_failures_total",
	"Detector failures by detector name and exception class",
	["detector", "error"],
)

TRUST_LEDGER_CONFLICTS = Counter(
	"chatguard_trust_ledger_conflicts_total",
	"Optimistic concurrency conflicts on user moderation status writes",
)

ANALYSIS_LATENCY = Histogram(
	"chatguard_moderation_analysis_seconds",
	"Latency of analyze_message calls",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

BACKGROUND_RUNS = Counter(
	"chatguard_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"chatguard_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def inc_violation(violation_type: str, severity: str) -> None:
	MODERATION_VIOLATIONS.labels(type=violation_type, severity=severity).inc()


def inc_analysis(action: str) -> None:
	MODERATION_ANALYSES.labels(action=action).inc()


def inc_action(action: str, *, result: str) -> None:
	MODERATION_ACTIONS.labels(action=action, result=result).inc()


def inc_detector_failure(detector: str, error: str) -> None:
	DETECTOR_FAILURES.labels(detector=detector, error=error).inc()


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
