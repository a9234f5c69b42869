from mco.errors import CompositeError, NotFound, RemoteFailure, aggregate


def test_aggregate_nothing_failed():
    assert aggregate([]) is None
    assert aggregate([None, None]) is None


def test_aggregate_keeps_single_cause():
    err = RemoteFailure("create failed")
    agg = aggregate([err, None])
    assert isinstance(agg, CompositeError)
    assert agg.causes == [err]
    assert str(agg) == "create failed"


def test_aggregate_flattens_nested_in_order():
    first = RemoteFailure("statefulset create failed")
    second = RemoteFailure("delete service failed")
    third = NotFound("read service gone")

    agg = aggregate([aggregate([first, second]), third])

    assert agg.causes == [first, second, third]
    assert len(agg) == 3
    assert list(agg) == [first, second, third]
    assert "statefulset create failed" in str(agg)
    assert "delete service failed" in str(agg)
    assert "read service gone" in str(agg)
    assert agg.has(NotFound)
    assert agg.has(RemoteFailure)


def test_remote_failure_keeps_status():
    assert RemoteFailure("boom", status=503).status == 503
    assert RemoteFailure("boom").status is None
