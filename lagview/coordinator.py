"""The HTTP API server: listeners, request routing and the administrative endpoints."""

from __future__ import annotations

import contextlib
import ipaddress
import json
import logging
import re
import socket
import ssl
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote

from . import config_handlers, kafka_handlers
from .metrics import MetricsRegistry
from .models import ApplicationContext, LogLevel
from .responses import (
    Request,
    Response,
    error_response,
    json_response,
    not_found_response,
    request_info,
    text_response,
)
from .settings import Settings

Params = Mapping[str, str]
Handler = Callable[[Request, Params], Response]
SettingsHandler = Callable[[ApplicationContext, Settings, Request, Params], Response]

_DEFAULT_TIMEOUT = 300
_METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
_HOSTNAME = re.compile(
    r"^(?=.{1,253}\.?$)[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*\.?$"
)


def _split_host_port(address: str) -> tuple[str, str]:
    if address.startswith("["):
        end = address.find("]")
        if end < 0 or address[end + 1 : end + 2] != ":":
            raise ValueError(f"missing port in address {address!r}")
        return address[1:end], address[end + 2 :]
    host, sep, port = address.rpartition(":")
    if not sep or ":" in host:
        raise ValueError(f"malformed address {address!r}")
    return host, port


def _valid_host_port(address: str, allow_blank_host: bool) -> bool:
    try:
        host, port = _split_host_port(address)
    except ValueError:
        return False
    if not port.isdigit() or int(port) > 65535:
        return False
    if not host:
        return allow_blank_host
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return bool(_HOSTNAME.match(host))
    return True


@dataclass(frozen=True)
class _ListenerConfig:
    name: str
    host: str
    port: int
    timeout: int
    tls: ssl.SSLContext | None


@dataclass(frozen=True)
class _Route:
    method: str
    parts: tuple[str, ...]
    handler: Handler

    def match(self, parts: list[str]) -> dict[str, str] | None:
        if len(parts) != len(self.parts):
            return None
        params: dict[str, str] = {}
        for pattern, part in zip(self.parts, parts):
            if pattern.startswith(":"):
                if not part:
                    return None
                params[pattern[1:]] = part
            elif pattern != part:
                return None
        return params


def _path_parts(path: str) -> list[str] | None:
    if not path.startswith("/"):
        return None
    return path.split("/")[1:]


class _Server(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        coordinator: Coordinator,
        idle_timeout: int,
        tls: ssl.SSLContext | None,
        family: socket.AddressFamily,
    ) -> None:
        self.address_family = family
        self.coordinator = coordinator
        self.idle_timeout = idle_timeout
        self.tls = tls
        super().__init__(address, _RequestHandler)

    def get_request(self) -> tuple[socket.socket, object]:
        conn, addr = super().get_request()
        if self.idle_timeout > 0:
            conn.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            for option in ("TCP_KEEPIDLE", "TCP_KEEPINTVL"):
                if hasattr(socket, option):
                    conn.setsockopt(
                        socket.IPPROTO_TCP, getattr(socket, option), self.idle_timeout
                    )
        if self.tls is not None:
            conn = self.tls.wrap_socket(
                conn, server_side=True, do_handshake_on_connect=False
            )
        return conn, addr


class _RequestHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"
    server: _Server

    def setup(self) -> None:
        self.timeout = self.server.idle_timeout or None
        super().setup()

    def _serve(self) -> None:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            self.send_error(400, "invalid Content-Length")
            return
        body = self.rfile.read(length) if length > 0 else b""
        request = Request(self.command, self.path, body, dict(self.headers.items()))
        try:
            response = self.server.coordinator.dispatch(request)
        except Exception:
            logging.getLogger(__name__).exception("request failed: %s", self.path)
            response = Response(
                500,
                b"Internal Server Error\n",
                {"Content-Type": "text/plain; charset=utf-8"},
            )
        self.send_response(response.status)
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(response.body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(response.body)

    do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = do_HEAD = do_OPTIONS = _serve

    def log_message(self, format: str, *args: object) -> None:
        logging.getLogger(__name__).debug(
            "%s %s", self.address_string(), format % args
        )


def _decode_level(body: bytes) -> str:
    """Read the requested level from a JSON object body."""
    value, _ = json.JSONDecoder().raw_decode(body.decode("utf-8").lstrip())
    if value is None:
        return ""
    if not isinstance(value, dict):
        raise ValueError("body is not a JSON object")
    level = ""
    for key, item in value.items():
        if key.lower() == "level":
            if item is None:
                continue
            if not isinstance(item, str):
                raise ValueError("level is not a string")
            level = item
    return level


class Coordinator:
    """Runs the HTTP API on every configured listener."""

    def __init__(
        self,
        app: ApplicationContext,
        settings: Settings | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.app = app
        self.settings = settings if settings is not None else Settings()
        self.metrics = metrics if metrics is not None else MetricsRegistry()
        self.log = logging.getLogger(__name__)
        self.listeners: dict[str, tuple[str, int]] = {}
        self._configs: dict[str, _ListenerConfig] | None = None
        self._routes: list[_Route] | None = None
        self._servers: dict[str, _Server] = {}
        self._threads: list[threading.Thread] = []

    def configure(self) -> None:
        """Validate the listener settings and build the routing table.

        Without any listener configured, a default one on a random port is added.
        Raises ValueError when a listener's settings are unusable.
        """
        self.log.info("configuring")
        servers = self.settings.get_string_map("httpserver")
        if not servers:
            self.settings.set("httpserver.default.address", ":0")
            servers = self.settings.get_string_map("httpserver")

        configs: dict[str, _ListenerConfig] = {}
        for name in servers:
            root = f"httpserver.{name}"
            address = self.settings.get_string(f"{root}.address")
            if not _valid_host_port(address, True):
                raise ValueError("invalid HTTP server listener address")
            self.settings.set_default(f"{root}.timeout", _DEFAULT_TIMEOUT)
            timeout = self.settings.get_int(f"{root}.timeout")
            tls = self._tls_context(root) if self.settings.is_set(f"{root}.tls") else None
            host, port = _split_host_port(address)
            configs[name] = _ListenerConfig(name, host, int(port), timeout, tls)

        self._configs = configs
        self._routes = self._build_routes()

    def _tls_context(self, root: str) -> ssl.SSLContext:
        profile = f"tls.{self.settings.get_string(f'{root}.tls')}"
        cert_file = self.settings.get_string(f"{profile}.certfile")
        key_file = self.settings.get_string(f"{profile}.keyfile")
        ca_file = self.settings.get_string(f"{profile}.cafile")

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        if ca_file:
            try:
                ca_data = Path(ca_file).read_bytes()
            except OSError as err:
                raise ValueError(f"cannot read TLS CA file: {err}") from err
            # Certificates that do not parse are skipped, as a PEM pool does.
            with contextlib.suppress(ssl.SSLError, ValueError):
                context.load_verify_locations(cadata=ca_data.decode("ascii", "ignore"))

        if not cert_file or not key_file:
            raise ValueError("TLS HTTP server specified with missing certificate or key")
        try:
            context.load_cert_chain(cert_file, key_file)
        except (OSError, ssl.SSLError) as err:
            raise ValueError(f"cannot read TLS certificate or key file: {err}") from err
        return context

    def _bind(self, handler: SettingsHandler) -> Handler:
        return lambda request, params: handler(self.app, self.settings, request, params)

    def _build_routes(self) -> list[_Route]:
        k, c, bind = kafka_handlers, config_handlers, self._bind
        table: list[tuple[str, str, Handler]] = [
            ("GET", "/burrow/admin", self.handle_admin),
            ("GET", "/burrow/admin/ready", self.handle_ready),
            ("GET", "/metrics", self.handle_metrics),
            ("GET", "/v3/kafka", bind(k.handle_cluster_list)),
            ("GET", "/v3/kafka/:cluster", bind(k.handle_cluster_detail)),
            ("GET", "/v3/kafka/:cluster/topic", bind(k.handle_topic_list)),
            ("GET", "/v3/kafka/:cluster/topic/:topic", bind(k.handle_topic_detail)),
            (
                "GET",
                "/v3/kafka/:cluster/topic/:topic/consumers",
                bind(k.handle_topic_consumer_list),
            ),
            ("GET", "/v3/kafka/:cluster/consumer", bind(k.handle_consumer_list)),
            ("GET", "/v3/kafka/:cluster/consumer/:consumer", bind(k.handle_consumer_detail)),
            (
                "GET",
                "/v3/kafka/:cluster/consumer/:consumer/status",
                bind(k.handle_consumer_status),
            ),
            (
                "GET",
                "/v3/kafka/:cluster/consumer/:consumer/lag",
                bind(k.handle_consumer_status_complete),
            ),
            ("GET", "/v3/config", bind(c.config_main)),
            ("GET", "/v3/config/storage", bind(c.config_storage_list)),
            ("GET", "/v3/config/storage/:name", bind(c.config_storage_detail)),
            ("GET", "/v3/config/evaluator", bind(c.config_evaluator_list)),
            ("GET", "/v3/config/evaluator/:name", bind(c.config_evaluator_detail)),
            ("GET", "/v3/config/cluster", bind(c.config_cluster_list)),
            ("GET", "/v3/config/cluster/:cluster", bind(k.handle_cluster_detail)),
            ("GET", "/v3/config/consumer", bind(c.config_consumer_list)),
            ("GET", "/v3/config/consumer/:name", bind(c.config_consumer_detail)),
            ("GET", "/v3/config/notifier", bind(c.config_notifier_list)),
            ("GET", "/v3/config/notifier/:name", bind(c.config_notifier_detail)),
            ("DELETE", "/v3/kafka/:cluster/consumer/:consumer", bind(k.handle_consumer_delete)),
            (
                "DELETE",
                "/v3/kafka/:cluster/consumer/:consumer/topic/:topic",
                bind(k.handle_consumer_delete),
            ),
            ("GET", "/v3/admin/loglevel", self.get_log_level),
            ("POST", "/v3/admin/loglevel", self.set_log_level),
        ]
        return [
            _Route(method, tuple(path.split("/")[1:]), handler)
            for method, path, handler in table
        ]

    def start(self) -> None:
        """Open every listener and serve requests on each in the background.

        If any listener cannot be opened, those already opened are closed and
        the error is raised.
        """
        if self._configs is None:
            raise RuntimeError("the coordinator has not been configured")
        self.log.info("starting")

        started: dict[str, _Server] = {}
        for name, config in self._configs.items():
            family = socket.AF_INET6 if ":" in config.host else socket.AF_INET
            try:
                server = _Server(
                    (config.host, config.port), self, config.timeout, config.tls, family
                )
            except OSError as err:
                self.log.error(
                    "failed to listen on %s:%s: %s", config.host, config.port, err
                )
                for opened in started.values():
                    try:
                        opened.server_close()
                    except OSError as close_err:
                        self.log.error("could not close listener: %s", close_err)
                raise
            started[name] = server
            self.log.info("started listener %s:%s", *server.server_address[:2])

        for name, server in started.items():
            thread = threading.Thread(
                target=server.serve_forever, name=f"http-{name}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        self._servers.update(started)
        self.listeners.update(
            {name: tuple(server.server_address[:2]) for name, server in started.items()}
        )

    def stop(self) -> None:
        """Close every listener without waiting for clients.

        Every listener is closed even when some fail; a RuntimeError is raised
        afterwards in that case.
        """
        self.log.info("shutdown")
        errors: list[OSError] = []
        for server in self._servers.values():
            try:
                server.shutdown()
                server.server_close()
            except OSError as err:
                errors.append(err)
        for thread in self._threads:
            thread.join(timeout=5)
        self._servers.clear()
        self._threads.clear()
        self.listeners.clear()
        if errors:
            self.log.error("errors shutting down: %s", errors)
            raise RuntimeError("error shutting down HTTP servers")

    def _matches(self, method: str, parts: list[str]) -> bool:
        return any(
            route.method == method and route.match(parts) is not None
            for route in self._routes or []
        )

    def dispatch(self, request: Request) -> Response:
        """Route a request to its handler and return the handler's response."""
        if self._routes is None:
            raise RuntimeError("the coordinator has not been configured")
        raw_path, sep, query = request.path.partition("?")
        path = unquote(raw_path)
        parts = _path_parts(path)
        if parts is None:
            return not_found_response()

        for route in self._routes:
            if route.method != request.method:
                continue
            params = route.match(parts)
            if params is not None:
                return route.handler(request, params)

        if request.method != "CONNECT" and path != "/":
            alternative = path[:-1] if path.endswith("/") else path + "/"
            alt_parts = _path_parts(alternative)
            if alt_parts is not None and self._matches(request.method, alt_parts):
                code = 301 if request.method == "GET" else 307
                location = alternative + (sep + query if sep else "")
                return Response(code, b"", {"Location": location})

        allowed = sorted(
            {
                route.method
                for route in self._routes
                if route.method not in (request.method, "OPTIONS")
                and route.match(parts) is not None
            }
        )
        if allowed:
            allow = ", ".join([*allowed, "OPTIONS"])
            if request.method == "OPTIONS":
                return Response(200, b"", {"Allow": allow})
            return Response(
                405,
                b"Method Not Allowed\n",
                {
                    "Allow": allow,
                    "Content-Type": "text/plain; charset=utf-8",
                    "X-Content-Type-Options": "nosniff",
                },
            )
        return not_found_response()

    def handle_admin(self, request: Request, params: Params) -> Response:
        """Health check: always answers GOOD."""
        return text_response(self.settings, 200, "GOOD")

    def handle_ready(self, request: Request, params: Params) -> Response:
        """Readiness check, driven by the application's ready flag."""
        if self.app.app_ready:
            return text_response(self.settings, 200, "READY")
        return text_response(self.settings, 503, "STARTING")

    def handle_metrics(self, request: Request, params: Params) -> Response:
        """Refresh the lag gauges and expose them in the Prometheus text format."""
        self.metrics.collect(self.app)
        return Response(
            200,
            self.metrics.render().encode("utf-8"),
            {"Content-Type": _METRICS_CONTENT_TYPE},
        )

    def get_log_level(self, request: Request, params: Params) -> Response:
        return json_response(
            self.settings,
            200,
            {
                "error": False,
                "message": "log level returned",
                "level": LogLevel(self.app.log_level).value,
                "request": request_info(request),
            },
        )

    def set_log_level(self, request: Request, params: Params) -> Response:
        """Change the log level from a JSON body such as {"level": "debug"}."""
        try:
            name = _decode_level(request.body)
        except ValueError:
            return error_response(
                self.settings, request, 400, "could not decode message body"
            )
        try:
            level = LogLevel.parse(name)
        except ValueError:
            return error_response(self.settings, request, 404, "unknown log level")
        self.app.log_level = level
        return json_response(
            self.settings,
            200,
            {"error": False, "message": "set log level", "request": request_info(request)},
        )