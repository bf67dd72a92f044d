"""Handlers for the configuration endpoints of the HTTP API."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from .kafka_handlers import get_client_profile
from .models import ApplicationContext
from .responses import Request, Response, error_response, json_response, request_info
from .settings import Settings

Params = Mapping[str, str]


def _int32(value: int) -> int:
    """Wrap an integer into the signed 32-bit range."""
    return ((value + 2**31) % 2**32) - 2**31


def _detail(settings: Settings, request: Request, message: str, module: Any) -> Response:
    return json_response(
        settings,
        200,
        {
            "error": False,
            "message": message,
            "module": module,
            "request": request_info(request),
        },
    )


def config_main(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    """The general, logging, zookeeper and listener configuration."""
    general = {
        "pidfile": settings.get_string("general.pidfile"),
        "stdout-logfile": settings.get_string("general.stdout-logfile"),
        "access-control-allow-origin": settings.get_string(
            "general.access-control-allow-origin"
        ),
    }
    logging = {
        "filename": settings.get_string("logging.filename"),
        "max-size": settings.get_int("logging.maxsize"),
        "max-backups": settings.get_int("logging.maxbackups"),
        "max-age": settings.get_int("logging.maxage"),
        "use-local-time": settings.get_bool("logging.use-localtime"),
        "use-compression": settings.get_bool("logging.use-compression"),
        "level": settings.get_string("logging.level"),
    }
    zookeeper = {
        "servers": settings.get_string_slice("zookeeper.servers"),
        "timeout": settings.get_int("zookeeper.timeout"),
        "root-path": settings.get_string("zookeeper.root-path"),
    }
    servers = {
        name: {
            "address": settings.get_string(f"httpserver.{name}.address"),
            "tls": settings.get_string(f"httpserver.{name}.tls"),
            "timeout": settings.get_int(f"httpserver.{name}.timeout"),
        }
        for name in settings.get_string_map("httpserver")
    }
    return json_response(
        settings,
        200,
        {
            "error": False,
            "message": "main config returned",
            "request": request_info(request),
            "general": general,
            "logging": logging,
            "zookeeper": zookeeper,
            "httpserver": servers,
        },
    )


def _module_list(
    settings: Settings, request: Request, coordinator: str
) -> Response:
    return json_response(
        settings,
        200,
        {
            "error": False,
            "message": "module list returned",
            "request": request_info(request),
            "coordinator": coordinator,
            "modules": list(settings.get_string_map(coordinator)),
        },
    )


def config_storage_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    return _module_list(settings, request, "storage")


def config_consumer_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    return _module_list(settings, request, "consumer")


def config_cluster_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    return _module_list(settings, request, "cluster")


def config_evaluator_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    return _module_list(settings, request, "evaluator")


def config_notifier_list(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    return _module_list(settings, request, "notifier")


def config_storage_detail(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    root = f"storage.{params.get('name', '')}"
    if not settings.is_set(root):
        return error_response(settings, request, 404, "storage module not found")
    module = {
        "class-name": settings.get_string(f"{root}.class-name"),
        "intervals": settings.get_int(f"{root}.intervals"),
        "min-distance": settings.get_int(f"{root}.min-distance"),
        "group-allowlist": settings.get_string(f"{root}.group-allowlist"),
        "expire-group": settings.get_int(f"{root}.expire-group"),
    }
    return _detail(settings, request, "storage module detail returned", module)


def config_consumer_detail(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    root = f"consumer.{params.get('name', '')}"
    if not settings.is_set(root):
        return error_response(settings, request, 404, "consumer module not found")
    module = {
        "class-name": settings.get_string(f"{root}.class-name"),
        "cluster": settings.get_string(f"{root}.cluster"),
        "servers": settings.get_string_slice(f"{root}.servers"),
        "group-allowlist": settings.get_string(f"{root}.group-allowlist"),
        "zookeeper-path": settings.get_string(f"{root}.zookeeper-path"),
        "zookeeper-timeout": _int32(settings.get_int(f"{root}.zookeeper-timeout")),
        "client-profile": get_client_profile(
            settings, settings.get_string(f"{root}.client-profile")
        ),
        "offsets-topic": settings.get_string(f"{root}.offsets-topic"),
        "start-latest": settings.get_bool(f"{root}.start-latest"),
    }
    return _detail(settings, request, "consumer module detail returned", module)


def config_evaluator_detail(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    root = f"evaluator.{params.get('name', '')}"
    if not settings.is_set(root):
        return error_response(settings, request, 404, "evaluator module not found")
    module = {
        "class-name": settings.get_string(f"{root}.class-name"),
        "expire-cache": settings.get_int(f"{root}.expire-cache"),
    }
    return _detail(settings, request, "evaluator module detail returned", module)


def _notifier_common(settings: Settings, root: str) -> dict[str, Any]:
    return {
        "class-name": settings.get_string(f"{root}.class-name"),
        "group-allowlist": settings.get_string(f"{root}.group-allowlist"),
        "interval": settings.get_int(f"{root}.interval"),
        "threshold": settings.get_int(f"{root}.threshold"),
    }


def _notifier_templates(settings: Settings, root: str) -> dict[str, Any]:
    return {
        "template-open": settings.get_string(f"{root}.template-open"),
        "template-close": settings.get_string(f"{root}.template-close"),
        "extra": settings.get_string_map_string(f"{root}.extras"),
        "send-close": settings.get_bool(f"{root}.send-close"),
    }


def _notifier_timing(settings: Settings, root: str) -> dict[str, Any]:
    return {
        "timeout": settings.get_int(f"{root}.timeout"),
        "keepalive": settings.get_int(f"{root}.keepalive"),
    }


def _notifier_http(settings: Settings, root: str) -> dict[str, Any]:
    return {
        **_notifier_common(settings, root),
        **_notifier_timing(settings, root),
        "url-open": settings.get_string(f"{root}.url-open"),
        "url-close": settings.get_string(f"{root}.url-close"),
        "method-open": settings.get_string(f"{root}.method-open"),
        "method-close": settings.get_string(f"{root}.method-close"),
        **_notifier_templates(settings, root),
        "extra-ca": settings.get_string(f"{root}.extra-ca"),
        "noverify": settings.get_string(f"{root}.noverify"),
    }


def _notifier_slack(settings: Settings, root: str) -> dict[str, Any]:
    return {
        **_notifier_common(settings, root),
        **_notifier_timing(settings, root),
        **_notifier_templates(settings, root),
        "channel": settings.get_string(f"{root}.channel"),
        "username": settings.get_string(f"{root}.username"),
        "icon-url": settings.get_string(f"{root}.icon-url"),
        "icon-emoji": settings.get_string(f"{root}.icon-emoji"),
    }


def _notifier_email(settings: Settings, root: str) -> dict[str, Any]:
    return {
        **_notifier_common(settings, root),
        **_notifier_templates(settings, root),
        "server": settings.get_string(f"{root}.server"),
        "port": settings.get_int(f"{root}.port"),
        "auth-type": settings.get_string(f"{root}.auth-type"),
        "username": settings.get_string(f"{root}.username"),
        "from": settings.get_string(f"{root}.from"),
        "to": settings.get_string(f"{root}.to"),
        "extra-ca": settings.get_string(f"{root}.extra-ca"),
        "noverify": settings.get_string(f"{root}.noverify"),
    }


def _notifier_null(settings: Settings, root: str) -> dict[str, Any]:
    return {
        **_notifier_common(settings, root),
        **_notifier_templates(settings, root),
    }


_NOTIFIER_PROFILES: dict[str, Callable[[Settings, str], dict[str, Any]]] = {
    "http": _notifier_http,
    "email": _notifier_email,
    "slack": _notifier_slack,
    "null": _notifier_null,
}


def config_notifier_detail(
    app: ApplicationContext, settings: Settings, request: Request, params: Params
) -> Response:
    """Detail of a notifier, shaped by its class; an unknown class gives an empty body."""
    root = f"notifier.{params.get('name', '')}"
    if not settings.is_set(root):
        return error_response(settings, request, 404, "notifier module not found")
    profile = _NOTIFIER_PROFILES.get(settings.get_string(f"{root}.class-name"))
    if profile is None:
        return Response(200)
    return _detail(
        settings, request, "notifier module detail returned", profile(settings, root)
    )