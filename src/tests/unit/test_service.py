from datetime import timedelta

import pytest
from injector import InstanceProvider
from redis.exceptions import ConnectionError as RedisConnectionError, RedisClusterException, ResponseError

from redis_ttl.config import RunConfig
from redis_ttl.connections import ConnectionFactory
from redis_ttl.exceptions import FanOutError, InvalidTtlError, StoreConnectionError, TopologyDiscoveryError
from redis_ttl.rate import TokenBucketGovernor
from redis_ttl.scanning import OutcomeTally
from redis_ttl.cluster import ShardResult
from redis_ttl.service import GovernorFactory, RunMode, RunReport, TtlMaintenanceService, build_injector

HOUR = timedelta(hours=1)

TWO_PRIMARIES = (
    "aaa p1:7000@17000 myself,master - 0 0 1 connected 0-8191\n"
    "bbb p2:7000@17000 master - 0 0 2 connected 8192-16383\n"
    "ccc p3:7000@17000 slave aaa 0 0 3 connected\n"
)


def _service(config, connections):
    def override(binder):
        binder.bind(ConnectionFactory, to=InstanceProvider(connections))

    return build_injector(config, override).get(TtlMaintenanceService)


def test_single_node_run(make_redis, make_connections):
    node = make_redis({"foo": None, "zoo": None})
    config = RunConfig(redis_addr="cache:6379", scan_prefix="f*", mode="exp", desired_ttl="1h")

    report = _service(config, make_connections({"cache:6379": node})).run()

    assert report.mode is RunMode.SINGLE
    assert report.succeeded and not report.degraded
    assert [result.label for result in report.results] == ["cache:6379"]
    assert report.total.mutated == 1
    assert node.ttl("foo") == HOUR
    assert node.closed


def test_single_node_unreachable(make_redis, make_connections):
    node = make_redis(failures={"ping": RedisConnectionError("Connection refused")})
    config = RunConfig(redis_addr="cache:6379", scan_prefix="f*", mode="exp")

    with pytest.raises(StoreConnectionError) as exc:
        _service(config, make_connections({"cache:6379": node})).run()

    assert "cannot reach cache:6379" in str(exc.value)
    assert node.closed


def test_single_node_degraded_run(make_redis, make_connections):
    node = make_redis({"foo": None}, failures={"pexpire": ResponseError("OOM")})
    config = RunConfig(redis_addr="cache:6379", scan_prefix="f*", mode="exp", on_error="continue")

    report = _service(config, make_connections({"cache:6379": node})).run()

    assert report.succeeded
    assert report.degraded
    assert report.total.errors == 1


def test_cluster_run_scans_every_primary(make_redis, make_connections):
    nodes = {
        "seed:7000": make_redis(cluster_report=TWO_PRIMARIES),
        "p1:7000": make_redis({"foo": None, "zoo": None}),
        "p2:7000": make_redis({"fizz": timedelta(seconds=1)}),
    }
    connections = make_connections(nodes)
    config = RunConfig(redis_cluster_addrs="seed:7000", scan_prefix="f*", mode="gt", desired_ttl="1h")

    report = _service(config, connections).run()

    assert report.mode is RunMode.CLUSTER
    assert [result.label for result in report.results] == ["p1:7000", "p2:7000"]
    assert nodes["p1:7000"].ttl("foo") == HOUR
    assert nodes["p1:7000"].ttl("zoo") is None
    assert nodes["p2:7000"].ttl("fizz") == HOUR
    assert report.total.mutated == 2
    assert connections.cluster.closed


def test_cluster_run_with_failing_primary(make_redis, make_connections):
    nodes = {
        "seed:7000": make_redis(cluster_report=TWO_PRIMARIES),
        "p1:7000": make_redis({"foo": None}),
        "p2:7000": make_redis({"fizz": None}, failures={"scan": ResponseError("LOADING")}),
    }
    connections = make_connections(nodes)
    config = RunConfig(redis_cluster_addrs="seed:7000", scan_prefix="f*", mode="exp")

    with pytest.raises(FanOutError) as exc:
        _service(config, connections).run()

    assert [result.label for result in exc.value.failures] == ["p2:7000"]
    assert nodes["p1:7000"].ttl("foo") == HOUR
    assert connections.cluster.closed


def test_cluster_run_without_reachable_seed(make_redis, make_connections):
    nodes = {"seed:7000": make_redis(failures={"ping": RedisConnectionError("refused")})}
    connections = make_connections(nodes)
    config = RunConfig(redis_cluster_addrs="seed:7000", scan_prefix="f*", mode="exp")

    with pytest.raises(TopologyDiscoveryError):
        _service(config, connections).run()

    assert connections.cluster is None


def test_discover_primaries(make_redis, make_connections):
    config = RunConfig(redis_cluster_addrs="seed:7000")
    service = _service(config, make_connections({"seed:7000": make_redis(cluster_report=TWO_PRIMARIES)}))
    assert [primary.address for primary in service.discover_primaries()] == ["p1:7000", "p2:7000"]


def test_invalid_config_is_rejected_before_any_connection():
    with pytest.raises(InvalidTtlError):
        RunConfig(redis_addr="cache:6379", mode="exp", desired_ttl="0")


def test_governor_factory_uses_configured_rate():
    injector = build_injector(RunConfig(rps=7))
    factory = injector.get(GovernorFactory)
    first, second = factory.create(), factory.create()
    assert isinstance(first, TokenBucketGovernor)
    assert first.rate == 7
    assert first is not second


def test_service_is_a_singleton():
    injector = build_injector(RunConfig())
    assert injector.get(TtlMaintenanceService) is injector.get(TtlMaintenanceService)


def test_run_report_totals():
    report = RunReport(
        mode=RunMode.CLUSTER,
        results=[
            ShardResult.success("a", OutcomeTally(visited=3, mutated=2, skipped=1)),
            ShardResult.success("b", OutcomeTally(visited=2, mutated=1, errors=1)),
        ],
    )
    assert report.total == OutcomeTally(visited=5, mutated=3, skipped=1, errors=1)
    assert report.succeeded
    assert report.degraded


def test_cluster_client_failure_is_a_connection_error(make_redis, make_connections):
    nodes = {
        "seed:7000": make_redis(cluster_report=TWO_PRIMARIES),
        "p1:7000": make_redis({"foo": None}),
        "p2:7000": make_redis(),
    }
    connections = make_connections(nodes)
    cause = RedisClusterException("Redis Cluster cannot be connected. Please provide at least one reachable node")
    connections.cluster_error = cause
    config = RunConfig(redis_cluster_addrs="seed:7000", scan_prefix="f*", mode="exp")

    with pytest.raises(StoreConnectionError) as exc:
        _service(config, connections).run()

    assert exc.value.__cause__ is cause
    assert "seed:7000" in str(exc.value)
    assert nodes["p1:7000"].mutations() == []
