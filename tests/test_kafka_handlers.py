import threading

import pytest

from lagview.kafka_handlers import (
    get_client_profile,
    get_sasl_profile,
    get_tls_profile,
    handle_cluster_detail,
    handle_cluster_list,
    handle_consumer_delete,
    handle_consumer_detail,
    handle_consumer_list,
    handle_consumer_status,
    handle_consumer_status_complete,
    handle_topic_consumer_list,
    handle_topic_detail,
    handle_topic_list,
)
from lagview.models import (
    ApplicationContext,
    ConsumerGroupStatus,
    ConsumerOffset,
    ConsumerPartition,
    PartitionStatus,
    Status,
    StorageRequestType,
)
from lagview.responses import Request
from lagview.settings import Settings


@pytest.fixture
def app():
    return ApplicationContext(reply_timeout=5)


@pytest.fixture
def settings():
    return Settings()


def serve(channel, replies):
    """Answer one queued request per reply, in order, recording each request."""
    seen = []

    def run():
        for reply in replies:
            req = channel.get(timeout=5)
            seen.append(req)
            if req.reply is not None:
                req.respond(reply)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread, seen


def get(path):
    return Request("GET", path)


def test_cluster_list(app, settings):
    thread, seen = serve(app.storage_channel, [["testcluster"]])
    resp = handle_cluster_list(app, settings, get("/v3/kafka"), {})
    thread.join(5)
    assert resp.status == 200
    body = resp.json()
    assert body["error"] is False
    assert body["clusters"] == ["testcluster"]
    assert body["request"]["url"] == "/v3/kafka"
    assert seen[0].request_type == StorageRequestType.FETCH_CLUSTERS


def test_cluster_detail(app, settings):
    settings.set("client-profile.test.client-id", "testid")
    settings.set("cluster.testcluster.class-name", "kafka")
    settings.set("cluster.testcluster.client-profile", "test")

    resp = handle_cluster_detail(
        app, settings, get("/v3/kafka/testcluster"), {"cluster": "testcluster"}
    )
    assert resp.status == 200
    body = resp.json()
    assert body["error"] is False
    assert body["module"]["class-name"] == "kafka"
    assert body["module"]["client-profile"]["client-id"] == "testid"
    assert body["module"]["client-profile"]["tls"] is None

    resp = handle_cluster_detail(
        app, settings, get("/v3/kafka/nocluster"), {"cluster": "nocluster"}
    )
    assert resp.status == 404
    assert resp.json()["message"] == "cluster module not found"


def test_topic_list(app, settings):
    thread, seen = serve(app.storage_channel, [["testtopic"], None])
    resp = handle_topic_list(
        app, settings, get("/v3/kafka/testcluster/topic"), {"cluster": "testcluster"}
    )
    assert resp.status == 200
    assert resp.json()["topics"] == ["testtopic"]

    resp = handle_topic_list(
        app, settings, get("/v3/kafka/nocluster/topic"), {"cluster": "nocluster"}
    )
    thread.join(5)
    assert resp.status == 404
    assert [r.request_type for r in seen] == [StorageRequestType.FETCH_TOPICS] * 2
    assert [r.cluster for r in seen] == ["testcluster", "nocluster"]


def test_consumer_list(app, settings):
    thread, seen = serve(app.storage_channel, [["testgroup"], None])
    resp = handle_consumer_list(
        app, settings, get("/v3/kafka/testcluster/consumer"), {"cluster": "testcluster"}
    )
    assert resp.status == 200
    assert resp.json()["consumers"] == ["testgroup"]

    resp = handle_consumer_list(
        app, settings, get("/v3/kafka/nocluster/consumer"), {"cluster": "nocluster"}
    )
    thread.join(5)
    assert resp.status == 404
    assert [r.request_type for r in seen] == [StorageRequestType.FETCH_CONSUMERS] * 2
    assert [r.cluster for r in seen] == ["testcluster", "nocluster"]


def test_topic_detail(app, settings):
    thread, seen = serve(app.storage_channel, [[345, 921], None, None])
    resp = handle_topic_detail(
        app, settings, get("/x"), {"cluster": "testcluster", "topic": "testtopic"}
    )
    assert resp.status == 200
    assert resp.json()["offsets"] == [345, 921]

    resp = handle_topic_detail(
        app, settings, get("/x"), {"cluster": "nocluster", "topic": "testtopic"}
    )
    assert resp.status == 404
    resp = handle_topic_detail(
        app, settings, get("/x"), {"cluster": "testcluster", "topic": "notopic"}
    )
    thread.join(5)
    assert resp.status == 404
    assert [(r.cluster, r.topic) for r in seen] == [
        ("testcluster", "testtopic"),
        ("nocluster", "testtopic"),
        ("testcluster", "notopic"),
    ]
    assert all(r.request_type == StorageRequestType.FETCH_TOPIC for r in seen)


def test_topic_consumer_list(app, settings):
    thread, seen = serve(app.storage_channel, [["testgroup"], None])
    resp = handle_topic_consumer_list(
        app, settings, get("/x"), {"cluster": "testcluster", "topic": "testtopic"}
    )
    assert resp.status == 200
    assert resp.json()["consumers"] == ["testgroup"]
    resp = handle_topic_consumer_list(
        app, settings, get("/x"), {"cluster": "nocluster", "topic": "testtopic"}
    )
    thread.join(5)
    assert resp.status == 404
    assert seen[0].request_type == StorageRequestType.FETCH_CONSUMERS_FOR_TOPIC


def test_consumer_detail(app, settings):
    topics = {
        "testtopic": [
            ConsumerPartition(
                offsets=[ConsumerOffset(offset=9837458, timestamp=12837487, lag=2355)],
                owner="somehost",
                current_lag=2345,
            )
        ]
    }
    thread, seen = serve(app.storage_channel, [topics, None, None])
    resp = handle_consumer_detail(
        app, settings, get("/x"), {"cluster": "testcluster", "consumer": "testgroup"}
    )
    assert resp.status == 200
    body = resp.json()
    assert body["error"] is False
    assert list(body["topics"]) == ["testtopic"]
    partitions = body["topics"]["testtopic"]
    assert len(partitions) == 1
    assert partitions[0]["owner"] == "somehost"
    assert partitions[0]["current-lag"] == 2345
    assert len(partitions[0]["offsets"]) == 1
    assert partitions[0]["offsets"][0]["offset"] == 9837458
    assert partitions[0]["offsets"][0]["timestamp"] == 12837487
    assert partitions[0]["offsets"][0]["lag"] == 2355

    resp = handle_consumer_detail(
        app, settings, get("/x"), {"cluster": "nocluster", "consumer": "testgroup"}
    )
    assert resp.status == 404
    resp = handle_consumer_detail(
        app, settings, get("/x"), {"cluster": "testcluster", "consumer": "nogroup"}
    )
    thread.join(5)
    assert resp.status == 404
    assert [(r.cluster, r.group) for r in seen] == [
        ("testcluster", "testgroup"),
        ("nocluster", "testgroup"),
        ("testcluster", "nogroup"),
    ]


def _not_found(cluster, group):
    return ConsumerGroupStatus(
        cluster=cluster, group=group, status=Status.NOTFOUND, complete=1.0
    )


def test_consumer_status(app, settings):
    maxlag = PartitionStatus(
        topic="testtopic",
        partition=0,
        status=Status.OK,
        start=ConsumerOffset(offset=9836458, timestamp=12836487, lag=3254),
        end=ConsumerOffset(offset=9837458, timestamp=12837487, lag=2355),
    )
    ok = ConsumerGroupStatus(
        cluster="testcluster",
        group="testgroup",
        status=Status.OK,
        complete=1.0,
        total_partitions=2134,
        maxlag=maxlag,
        total_lag=2345,
    )
    full = ConsumerGroupStatus(
        cluster="testcluster",
        group="testgroup",
        status=Status.OK,
        complete=1.0,
        partitions=[maxlag],
        total_partitions=2134,
        maxlag=maxlag,
        total_lag=2345,
    )
    replies = [
        ok,
        _not_found("nocluster", "testgroup"),
        _not_found("testcluster", "nogroup"),
        full,
        _not_found("nocluster", "testgroup"),
        _not_found("testcluster", "nogroup"),
    ]
    thread, seen = serve(app.evaluator_channel, replies)

    resp = handle_consumer_status(
        app, settings, get("/x"), {"cluster": "testcluster", "consumer": "testgroup"}
    )
    assert resp.status == 200
    body = resp.json()
    assert body["error"] is False
    assert body["status"]["complete"] == 1.0
    assert body["status"]["partitions"] == []
    assert body["status"]["partition_count"] == 2134
    assert body["status"]["maxlag"]["topic"] == "testtopic"
    assert body["status"]["status"] == "OK"

    for params in (
        {"cluster": "nocluster", "consumer": "testgroup"},
        {"cluster": "testcluster", "consumer": "nogroup"},
    ):
        assert handle_consumer_status(app, settings, get("/x"), params).status == 404

    resp = handle_consumer_status_complete(
        app, settings, get("/x"), {"cluster": "testcluster", "consumer": "testgroup"}
    )
    assert resp.status == 200
    body = resp.json()
    assert len(body["status"]["partitions"]) == 1
    assert body["status"]["partition_count"] == 2134
    assert body["status"]["maxlag"]["end"]["offset"] == 9837458

    for params in (
        {"cluster": "nocluster", "consumer": "testgroup"},
        {"cluster": "testcluster", "consumer": "nogroup"},
    ):
        assert (
            handle_consumer_status_complete(app, settings, get("/x"), params).status
            == 404
        )
    thread.join(5)
    assert [r.show_all for r in seen] == [False] * 3 + [True] * 3
    assert [(r.cluster, r.group) for r in seen][:3] == [
        ("testcluster", "testgroup"),
        ("nocluster", "testgroup"),
        ("testcluster", "nogroup"),
    ]


def test_consumer_delete(app, settings):
    resp = handle_consumer_delete(
        app,
        settings,
        Request("DELETE", "/v3/kafka/testcluster/consumer/testgroup"),
        {"cluster": "testcluster", "consumer": "testgroup"},
    )
    assert resp.status == 200
    body = resp.json()
    assert body["error"] is False
    assert body["message"] == "consumer group removed"
    sent = app.storage_channel.get_nowait()
    assert sent.request_type == StorageRequestType.SET_DELETE_GROUP
    assert (sent.cluster, sent.group, sent.topic) == ("testcluster", "testgroup", "")
    assert sent.reply is None


def test_consumer_delete_with_topic(app, settings):
    handle_consumer_delete(
        app,
        settings,
        Request("DELETE", "/x"),
        {"cluster": "c", "consumer": "g", "topic": "t"},
    )
    sent = app.storage_channel.get_nowait()
    assert sent.topic == "t"


def test_tls_profile(settings):
    assert get_tls_profile(settings, "missing") is None
    settings.set("tls.main.certfile", "/tmp/cert.pem")
    settings.set("tls.main.noverify", True)
    assert get_tls_profile(settings, "main") == {
        "name": "main",
        "noverify": True,
        "certfile": "/tmp/cert.pem",
        "keyfile": "",
        "cafile": "",
    }


def test_sasl_profile(settings):
    assert get_sasl_profile(settings, "missing") is None
    settings.set("sasl.auth.username", "user")
    settings.set("sasl.auth.handshake-first", "true")
    assert get_sasl_profile(settings, "auth") == {
        "name": "auth",
        "handshake-first": True,
        "username": "user",
    }


def test_client_profile_links_tls_and_sasl(settings):
    settings.set("client-profile.p.kafka-version", "2.0.0")
    settings.set("client-profile.p.tls", "main")
    settings.set("client-profile.p.sasl", "auth")
    settings.set("tls.main.keyfile", "/tmp/key.pem")
    settings.set("sasl.auth.username", "user")
    profile = get_client_profile(settings, "p")
    assert profile["name"] == "p"
    assert profile["kafka-version"] == "2.0.0"
    assert profile["client-id"] == ""
    assert profile["tls"]["keyfile"] == "/tmp/key.pem"
    assert profile["sasl"]["username"] == "user"


def test_cors_header_on_cluster_list(app, settings):
    settings.set("general.access-control-allow-origin", "*")
    thread, _ = serve(app.storage_channel, [[]])
    resp = handle_cluster_list(app, settings, get("/v3/kafka"), {})
    thread.join(5)
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert resp.json()["clusters"] == []