import pytest

from mco.models import (
    DEFAULT_IMAGE,
    DEFAULT_PORT,
    DEFAULT_REPLICAS,
    DEFAULT_STORAGE,
    ClusterResource,
    backup_claim_name,
    read_service_name,
    service_name,
    stateful_set_name,
    validate_cluster_name,
)

from factories import make_cluster


def test_with_defaults_fills_unset_fields():
    c = make_cluster().with_defaults()
    assert c.spec.storage == DEFAULT_STORAGE
    assert c.spec.replicas == DEFAULT_REPLICAS
    assert c.spec.port == DEFAULT_PORT
    assert c.spec.image == DEFAULT_IMAGE
    assert c.spec.from_backup is None


def test_with_defaults_keeps_explicit_values_and_does_not_mutate():
    original = make_cluster(replicas=5, storage="10Gi", port=3307, image="mysql:8.0")
    c = original.with_defaults()
    assert (c.spec.replicas, c.spec.storage, c.spec.port, c.spec.image) == (5, "10Gi", 3307, "mysql:8.0")

    bare = make_cluster()
    bare.with_defaults()
    assert bare.spec.replicas is None


def test_with_defaults_is_idempotent():
    once = make_cluster(replicas=3).with_defaults()
    assert once.with_defaults() == once


def test_wire_form_uses_camel_case():
    c = ClusterResource.from_dict(
        {
            "apiVersion": "cr.mco.io/v1",
            "kind": "MySQLCluster",
            "metadata": {"name": "shop", "namespace": "prod", "resourceVersion": "17", "generation": 2},
            "spec": {"fromBackup": "shop-nightly-1", "replicas": 3},
            "status": {"state": "Successful update"},
        }
    )
    assert c.identity == ("prod", "shop")
    assert c.spec.from_backup == "shop-nightly-1"
    assert c.metadata.resource_version == "17"

    data = c.to_dict()
    assert data["spec"]["fromBackup"] == "shop-nightly-1"
    assert data["metadata"]["resourceVersion"] == "17"
    assert data["apiVersion"] == "cr.mco.io/v1"


def test_with_status_returns_copy():
    c = make_cluster()
    updated = c.with_status("Failed update", "nope")
    assert (updated.status.state, updated.status.message) == ("Failed update", "nope")
    assert c.status.state == ""


def test_derived_names():
    assert service_name("shop") == "shop"
    assert read_service_name("shop") == "shop-read"
    assert stateful_set_name("shop") == "shop"
    assert backup_claim_name("nightly") == "nightly-backup"


@pytest.mark.parametrize("name", ["a", "shop", "shop-db-2", "x" * 58])
def test_valid_cluster_names(name):
    validate_cluster_name(name)


@pytest.mark.parametrize("name", ["", "Shop", "1shop", "shop-", "shop_db", "x" * 59])
def test_invalid_cluster_names(name):
    with pytest.raises(ValueError):
        validate_cluster_name(name)
