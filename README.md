# lagview

`lagview` is the HTTP interface of a Kafka consumer-lag monitor. It answers
JSON requests about the clusters, topics and consumer groups that a
monitoring backend keeps track of. It also reports the monitor's own
configuration and exposes consumer lag as Prometheus metrics.

The package uses only the Python standard library.

## How it fits together

- `lagview.settings.Settings` is a hierarchical, case-insensitive key/value
  store with dotted keys such as `"cluster.local.class-name"`. It has an
  override layer (`set`) and a default layer (`set_default`). Handlers read
  all of their configuration from it.
- `lagview.models.ApplicationContext` holds the log level, the ready flag and
  two queues, `storage_channel` and `evaluator_channel`:
  - `query_storage(...)` puts a `StorageRequest` on `storage_channel` and
    waits for its answer.
  - `send_storage(...)` puts a `StorageRequest` that expects no answer.
  - `query_evaluator(...)` puts an `EvaluatorRequest` on
    `evaluator_channel` and waits for a `ConsumerGroupStatus`.
  - A backend answers by calling `respond(...)` on the request. `None` means
    nothing was found.
  - `reply_timeout` limits the wait. The default `None` waits for ever.
- `lagview.coordinator.Coordinator(app, settings=None, metrics=None)` serves
  the API:
  - `configure()` validates the listeners and builds the routes.
  - `start()` opens the listeners and records their addresses in
    `listeners`.
  - `stop()` closes the listeners.
  - `dispatch(request)` routes a `lagview.responses.Request` to its handler
    and returns a `lagview.responses.Response`.

## Example

```python
import threading

from lagview.coordinator import Coordinator
from lagview.models import ApplicationContext, StorageRequestType
from lagview.responses import Request
from lagview.settings import Settings

app = ApplicationContext(reply_timeout=5)

def storage_backend():
    while True:
        request = app.storage_channel.get()
        if request.request_type is StorageRequestType.FETCH_CLUSTERS:
            request.respond(["local"])
        elif request.reply is not None:
            request.respond(None)

threading.Thread(target=storage_backend, daemon=True).start()

coordinator = Coordinator(app, Settings())
coordinator.configure()
response = coordinator.dispatch(Request("GET", "/v3/kafka"))
response.status                 # 200
response.json()["clusters"]     # ["local"]
```

To serve over the network, call `coordinator.start()`. Then read the bound
address from `coordinator.listeners`, and call `coordinator.stop()` when done.

## Settings

```python
from lagview.settings import Settings

settings = Settings()
settings.set("cluster.local.class-name", "kafka")
settings.set("cluster.local.servers", ["broker-1:9092", "broker-2:9092"])
settings.set_default("httpserver.default.timeout", 300)

settings.is_set("cluster.local")                 # True
settings.get_string("cluster.local.class-name")  # "kafka"
settings.get_string_slice("cluster.local.servers")
settings.get_string_map("cluster")               # {"local": {...}}
settings.get_int("httpserver.default.timeout")   # 300
```

### Listeners

- If no `httpserver` section is configured, `Coordinator.configure()` adds a
  listener called `default` on address `:0`, which picks a free port.
- Each listener's `timeout` defaults to 300 seconds.
- A listener may name a `tls` profile. That profile must give both
  `certfile` and `keyfile`, and may give a `cafile`.
- An invalid address, or an unusable TLS profile, makes `configure()` raise
  `ValueError`.

## Routes

| Method | Path | Answer |
| ------ | ---- | ------ |
| GET | `/burrow/admin` | `GOOD` |
| GET | `/burrow/admin/ready` | `READY`, or `STARTING` with status 503 |
| GET | `/metrics` | Prometheus text exposition |
| GET | `/v3/kafka` | cluster list |
| GET | `/v3/kafka/:cluster` | cluster configuration |
| GET | `/v3/kafka/:cluster/topic` | topic list |
| GET | `/v3/kafka/:cluster/topic/:topic` | partition offsets of a topic |
| GET | `/v3/kafka/:cluster/topic/:topic/consumers` | consumer groups of a topic |
| GET | `/v3/kafka/:cluster/consumer` | consumer group list |
| GET | `/v3/kafka/:cluster/consumer/:consumer` | committed offsets of a group |
| GET | `/v3/kafka/:cluster/consumer/:consumer/status` | group status, problem partitions only |
| GET | `/v3/kafka/:cluster/consumer/:consumer/lag` | group status with every partition |
| DELETE | `/v3/kafka/:cluster/consumer/:consumer` | remove a group |
| DELETE | `/v3/kafka/:cluster/consumer/:consumer/topic/:topic` | remove a group's topic |
| GET | `/v3/config` | general, logging, zookeeper and listener settings |
| GET | `/v3/config/{storage,evaluator,cluster,consumer,notifier}` | configured module names |
| GET | `/v3/config/{storage,evaluator,consumer,notifier}/:name` | module settings |
| GET | `/v3/config/cluster/:cluster` | cluster configuration |
| GET | `/v3/admin/loglevel` | current log level |
| POST | `/v3/admin/loglevel` | set the log level from `{"level": "..."}` |

### Response bodies and errors

- JSON bodies carry `error`, `message` and a `request` object. That object
  holds the request path and the host name.
- When `general.access-control-allow-origin` is set, its value is sent as the
  `Access-Control-Allow-Origin` header.
- Unknown paths answer 404 with a JSON-shaped error body.
- A path that differs from a route only by a trailing slash is redirected:
  301 for GET, 307 for other methods.
- A known path requested with the wrong method answers 405 with an `Allow`
  header.
- A missing cluster, topic, group or module answers 404.
- The DELETE routes answer at once; the storage backend does the removal.
- A notifier whose `class-name` is not `http`, `email`, `slack` or `null`
  answers 200 with an empty body.

### Log levels

`POST /v3/admin/loglevel` accepts these level names, in any letter case:

- `debug` or `trace`
- `info`
- `warn` or `warning`
- `error`
- `fatal`

A body that cannot be decoded answers 400. An unknown level name answers 404.
The new level is stored in `ApplicationContext.log_level`.

## Metrics

`lagview.metrics.MetricsRegistry` holds these gauges:

- `burrow_kafka_consumer_lag_total`
- `burrow_kafka_consumer_status`
- `burrow_kafka_topic_partition_status`
- `burrow_kafka_consumer_current_offset`
- `burrow_kafka_consumer_partition_lag`
- `burrow_kafka_topic_partition_offset`

`collect(app)` refreshes the gauges from the backends. Consumer groups that are
not found are skipped. A partition's current offset and status are only
recorded when its window is complete. `render()` writes every non-empty gauge
family in the text exposition format.

These methods drop the series of groups and topics that have gone away:

- `delete_consumer_metrics`
- `delete_topic_metrics`
- `delete_consumer_topic_metrics`

## What this package does not do

- It has no storage or evaluator backend. It only puts requests on
  `ApplicationContext.storage_channel` and `evaluator_channel`, and the
  caller must supply something that answers them. Without an answer, handlers
  wait until `reply_timeout` runs out.
- It has no command-line entry point. Build a `Coordinator` in your own
  program and call `configure()` and `start()`.
- It does not read configuration files. Fill a `Settings` object yourself.

## Tests

The test suite uses pytest, declared in the `test` extra.