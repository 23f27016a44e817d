"""Governance evaluation latency and throughput benchmark.

Runs the in-process engine against an in-memory store with the WIP limit
rule set, so the numbers exclude any network or audit backend cost.

Usage:
    python benchmarks/latency_benchmark.py
"""

import time
import concurrent.futures
import numpy as np

from workgate.governance import GovernanceAdminService, GovernanceEngine
from workgate.governance.audit import AuditRecorder, InMemoryEvaluationStore
from workgate.governance.store import InMemoryGovernanceStore


def create_engine():
    store = InMemoryGovernanceStore()
    admin = GovernanceAdminService(store)
    rule_set = admin.create_rule_set(
        name="Bench WIP limits",
        scope_type="WORKSPACE",
        organization_id="org_bench",
        workspace_id="ws_bench",
        entity_type="task",
        enforcement_mode="BLOCK",
    )
    admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", {
        "condition": "currentWipCount <= wipLimit",
        "message": "WIP limit of {wipLimit} reached",
    })
    admin.add_and_publish(rule_set.rule_set_id, "ESTIMATE_SET", {
        "condition": {"present": "estimateHours"},
        "message": "Estimate required",
    })
    return GovernanceEngine(store=store, recorder=AuditRecorder(InMemoryEvaluationStore()))


def evaluate_once(engine, i=0):
    return engine.evaluate(
        organization_id="org_bench",
        workspace_id="ws_bench",
        entity_type="task",
        entity_id=f"task_{i}",
        transition_type="STATUS_CHANGE",
        from_value="TODO",
        to_value="IN_PROGRESS",
        actor_user_id="user_bench",
        input_snapshot={"currentWipCount": i % 5, "wipLimit": 3, "estimateHours": 4},
    )


def run_latency_benchmark(iterations=1000):
    engine = create_engine()

    print(f"--- Latency Benchmark ({iterations} iterations) ---")

    latencies = []

    # Warmup
    evaluate_once(engine)

    for i in range(iterations):
        start_time = time.perf_counter()
        evaluate_once(engine, i)
        end_time = time.perf_counter()

        latencies.append((end_time - start_time) * 1000)

        if (i + 1) % 200 == 0:
            print(f"  Completed {i + 1}/{iterations} iterations")

    print("\nLatency Results:")
    print(f"  Mean:   {np.mean(latencies):.3f} ms")
    print(f"  Median: {np.median(latencies):.3f} ms")
    print(f"  P95:    {np.percentile(latencies, 95):.3f} ms")
    print(f"  P99:    {np.percentile(latencies, 99):.3f} ms")
    print("-" * 40)
    return latencies


def run_throughput_benchmark(total_requests=5000, concurrent_users=10):
    engine = create_engine()

    print(f"\n--- Throughput Benchmark ({total_requests} requests, {concurrent_users} concurrent) ---")

    start_time = time.perf_counter()

    with concurrent.futures.ThreadPoolExecutor(max_workers=concurrent_users) as executor:
        futures = [executor.submit(evaluate_once, engine, i) for i in range(total_requests)]
        concurrent.futures.wait(futures)

    total_time = time.perf_counter() - start_time
    throughput = total_requests / total_time

    print("\nThroughput Results:")
    print(f"  Total Time: {total_time:.2f} s")
    print(f"  Throughput: {throughput:.2f} evaluations/sec")
    print("-" * 40)
    return throughput


if __name__ == "__main__":
    run_latency_benchmark()
    run_throughput_benchmark()
