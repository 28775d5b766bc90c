"""Tests for running operations across instances."""

import threading

import pytest

from crx_sync.core.exceptions import DeploymentRejected, RemoteRequestFailed
from crx_sync.core.models import Instance
from crx_sync.instance.sync import InstanceSync, for_each_instance


@pytest.fixture
def instances():
    return [
        Instance(name="author", url="http://localhost:4502"),
        Instance(name="publish", url="http://localhost:4503"),
        Instance(name="publish2", url="http://localhost:4504"),
    ]


def test_results_in_instance_order(instances, settings):
    results = for_each_instance(instances, lambda sync: sync.instance.name, settings)

    assert results == ["author", "publish", "publish2"]


def test_each_instance_gets_own_client(instances, settings):
    seen = []
    lock = threading.Lock()

    def operation(sync: InstanceSync):
        with lock:
            seen.append(sync)
        return sync.packages.json_target_url

    urls = for_each_instance(instances, operation, settings)

    assert len({id(s) for s in seen}) == 3
    assert len({id(s.transport) for s in seen}) == 3
    assert urls[1] == "http://localhost:4503/crx/packmgr/service/.json"


def test_runs_concurrently(instances, settings):
    barrier = threading.Barrier(len(instances), timeout=5)

    def operation(sync: InstanceSync):
        barrier.wait()
        return threading.current_thread().name

    names = for_each_instance(instances, operation, settings)

    assert len(set(names)) == 3


def test_failures_raised_together_after_all_complete(instances, settings):
    finished = []

    def operation(sync: InstanceSync):
        if sync.instance.name == "author":
            raise RemoteRequestFailed("author down")
        if sync.instance.name == "publish2":
            raise DeploymentRejected("install failed", errors=["E1"])
        finished.append(sync.instance.name)
        return True

    with pytest.raises(ExceptionGroup) as exc_info:
        for_each_instance(instances, operation, settings)

    group = exc_info.value
    assert finished == ["publish"]
    assert [type(e) for e in group.exceptions] == [RemoteRequestFailed, DeploymentRejected]


def test_empty_instances(settings):
    assert for_each_instance([], lambda sync: 1, settings) == []


def test_custom_client_factory(instances, settings):
    made = []

    def factory(instance):
        made.append(instance.name)
        return InstanceSync(instance, settings)

    for_each_instance(instances, lambda sync: None, settings, client_factory=factory)

    assert sorted(made) == ["author", "publish", "publish2"]
