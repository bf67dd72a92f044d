"""Handlers for the cluster, topic and consumer endpoints of the HTTP API."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .models import ApplicationContext, ConsumerGroupStatus, Status, StorageRequestType
from .responses import Request, Response, error_response, json_response, request_info
from .settings import Settings

Params = Mapping[str, str]


def _ok(settings: Settings, request: Request, message: str, **fields: Any) -> Response:
    payload: dict[str, Any] = {"error": False, "message": message}
    payload.update(fields)
    payload["request"] = request_info(request)
    return json_response(settings, 200, payload)


def get_tls_profile(settings: Settings, name: str) -> dict[str, Any] | None:
    """Describe the named TLS profile, or None when it is not configured."""
    root = f"tls.{name}"
    if not settings.is_set(root):
        return None
    return {
        "name": name,
        "noverify": settings.get_bool(f"{root}.noverify"),
        "certfile": settings.get_string(f"{root}.certfile"),
        "keyfile": settings.get_string(f"{root}.keyfile"),
        "cafile": settings.get_string(f"{root}.cafile"),
    }


def get_sasl_profile(settings: Settings, name: str) -> dict[str, Any] | None:
    """Describe the named SASL profile, or None when it is not configured."""
    root = f"sasl.{name}"
    if not settings.is_set(root):
        return None
    return {
        "name": name,
        "handshake-first": settings.get_bool(f"{root}.handshake-first"),
        "username": settings.get_string(f"{root}.username"),
    }


def get_client_profile(settings: Settings, name: str) -> dict[str, Any]:
    """Describe the named client profile, with its TLS and SASL profiles."""
    root = f"client-profile.{name}"
    return {
        "name": name,
        "client-id": settings.get_string(f"{root}.client-id"),
        "kafka-version": settings.get_string(f"{root}.kafka-version"),
        "tls": get_tls_profile(settings, settings.get_string(f"{root}.tls")),
        "sasl": get_sasl_profile(settings, settings.get_string(f"{root}.sasl")),
    }


def handle_cluster_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    clusters = app.query_storage(StorageRequestType.FETCH_CLUSTERS)
    return _ok(settings, request, "cluster list returned", clusters=list(clusters or []))


def handle_cluster_detail(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    root = f"cluster.{params.get('cluster', '')}"
    if not settings.is_set(root):
        return error_response(settings, request, 404, "cluster module not found")
    module = {
        "class-name": settings.get_string(f"{root}.class-name"),
        "servers": settings.get_string_slice(f"{root}.servers"),
        "client-profile": get_client_profile(
            settings, settings.get_string(f"{root}.client-profile")
        ),
        "topic-refresh": settings.get_int(f"{root}.topic-refresh"),
        "offset-refresh": settings.get_int(f"{root}.offset-refresh"),
    }
    return _ok(settings, request, "cluster module detail returned", module=module)


def handle_topic_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    topics = app.query_storage(
        StorageRequestType.FETCH_TOPICS, cluster=params.get("cluster", "")
    )
    if topics is None:
        return error_response(settings, request, 404, "cluster not found")
    return _ok(settings, request, "topic list returned", topics=list(topics))


def handle_topic_detail(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    offsets = app.query_storage(
        StorageRequestType.FETCH_TOPIC,
        cluster=params.get("cluster", ""),
        topic=params.get("topic", ""),
    )
    if offsets is None:
        return error_response(settings, request, 404, "cluster or topic not found")
    return _ok(settings, request, "topic offsets returned", offsets=list(offsets))


def handle_topic_consumer_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    consumers = app.query_storage(
        StorageRequestType.FETCH_CONSUMERS_FOR_TOPIC,
        cluster=params.get("cluster", ""),
        topic=params.get("topic", ""),
    )
    if consumers is None:
        return error_response(settings, request, 404, "cluster not found")
    return _ok(settings, request, "consumers of topic returned", consumers=list(consumers))


def handle_consumer_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    consumers = app.query_storage(
        StorageRequestType.FETCH_CONSUMERS, cluster=params.get("cluster", "")
    )
    if consumers is None:
        return error_response(settings, request, 404, "cluster not found")
    return _ok(settings, request, "consumer list returned", consumers=list(consumers))


def handle_consumer_detail(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    topics = app.query_storage(
        StorageRequestType.FETCH_CONSUMER,
        cluster=params.get("cluster", ""),
        group=params.get("consumer", ""),
    )
    if topics is None:
        return error_response(settings, request, 404, "cluster or consumer not found")
    return _ok(settings, request, "consumer detail returned", topics=topics)


def _consumer_status(
    app: ApplicationContext,
    settings: Settings,
    request: Request,
    params: Params,
    show_all: bool,
) -> Response:
    cluster = params.get("cluster", "")
    group = params.get("consumer", "")
    status = app.query_evaluator(cluster, group, show_all=show_all)
    if status is None:
        status = ConsumerGroupStatus(cluster=cluster, group=group, status=Status.NOTFOUND)
    code = 404 if status.status == Status.NOTFOUND else 200
    return json_response(
        settings,
        code,
        {
            "error": False,
            "message": "consumer status returned",
            "status": status,
            "request": request_info(request),
        },
    )


def handle_consumer_status(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    """Status of a group, listing only the partitions that are not healthy."""
    return _consumer_status(app, settings, request, params, show_all=False)


def handle_consumer_status_complete(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    """Status of a group, listing every partition."""
    return _consumer_status(app, settings, request, params, show_all=True)


def handle_consumer_delete(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    app.send_storage(
        StorageRequestType.SET_DELETE_GROUP,
        cluster=params.get("cluster", ""),
        group=params.get("consumer", ""),
        topic=params.get("topic", ""),
    )
    return _ok(settings, request, "consumer group removed")