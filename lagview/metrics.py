"""Gauges describing consumer lag, exposed in the Prometheus text format."""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable, Mapping
from decimal import Decimal

from .models import ApplicationContext, ConsumerGroupStatus, Status, StorageRequestType


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_value(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    prefix = "-" if sign else ""
    text = "".join(str(digit) for digit in digits)
    exp = len(digits) + exponent - 1
    if exp < -4 or exp >= 6:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        exp_sign = "-" if exp < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp):02d}"
    return prefix + format(Decimal(repr(abs(value))).normalize(), "f")


class GaugeVec:
    """A family of gauges sharing a name, keyed by a fixed set of labels."""

    def __init__(self, name: str, help_text: str, label_names: Iterable[str]) -> None:
        self.name = name
        self.help = help_text
        self.label_names = tuple(label_names)
        self._values: dict[tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Mapping[str, str]) -> tuple[str, ...]:
        if set(labels) != set(self.label_names):
            raise ValueError(
                f"{self.name}: expected labels {sorted(self.label_names)}, got {sorted(labels)}"
            )
        return tuple(str(labels[name]) for name in self.label_names)

    def set(self, labels: Mapping[str, str], value: float) -> None:
        """Set the gauge identified by the labels."""
        key = self._key(labels)
        with self._lock:
            self._values[key] = float(value)

    def delete(self, labels: Mapping[str, str]) -> bool:
        """Remove the gauge whose labels match exactly; tell whether one was removed."""
        try:
            key = self._key(labels)
        except ValueError:
            return False
        with self._lock:
            return self._values.pop(key, None) is not None

    def delete_partial_match(self, labels: Mapping[str, str]) -> int:
        """Remove every gauge carrying all the given label values; return how many."""
        if any(name not in self.label_names for name in labels):
            return 0
        wanted = [(self.label_names.index(name), str(value)) for name, value in labels.items()]
        with self._lock:
            doomed = [
                key for key in self._values if all(key[i] == value for i, value in wanted)
            ]
            for key in doomed:
                del self._values[key]
        return len(doomed)

    def render(self) -> str:
        """The family in text exposition format, or an empty string when it holds nothing."""
        with self._lock:
            items = list(self._values.items())
        if not items:
            return ""
        order = sorted(range(len(self.label_names)), key=lambda i: self.label_names[i])
        items.sort(key=lambda item: [item[0][i] for i in order])
        lines = [
            f"# HELP {self.name} {_escape_help(self.help)}",
            f"# TYPE {self.name} gauge",
        ]
        for key, value in items:
            pairs = ",".join(
                f'{self.label_names[i]}="{_escape_label(key[i])}"' for i in order
            )
            lines.append(f"{self.name}{{{pairs}}} {_format_value(value)}")
        return "\n".join(lines) + "\n"


class MetricsRegistry:
    """The lag gauges, refreshed from the storage and evaluator subsystems."""

    def __init__(self) -> None:
        self.consumer_total_lag = GaugeVec(
            "burrow_kafka_consumer_lag_total",
            "The sum of all partition current lag values for the group",
            ["cluster", "consumer_group"],
        )
        self.consumer_status = GaugeVec(
            "burrow_kafka_consumer_status",
            "The status of the consumer group. It is calculated from the highest status "
            "for the individual partitions. Statuses are an index list from NOTFOUND, OK, WARN, or ERR",
            ["cluster", "consumer_group"],
        )
        self.partition_status = GaugeVec(
            "burrow_kafka_topic_partition_status",
            "The status of topic partition. It is calculated from the highest status for "
            "the individual partitions. Statuses are an index list from OK, WARN, STOP, STALL, REWIND",
            ["cluster", "consumer_group", "topic", "partition"],
        )
        self.consumer_partition_current_offset = GaugeVec(
            "burrow_kafka_consumer_current_offset",
            "Latest offset that Burrow is storing for this partition",
            ["cluster", "consumer_group", "topic", "partition"],
        )
        self.consumer_partition_lag = GaugeVec(
            "burrow_kafka_consumer_partition_lag",
            "Number of messages the consumer group is behind by for a partition as reported by Burrow",
            ["cluster", "consumer_group", "topic", "partition"],
        )
        self.topic_partition_offset = GaugeVec(
            "burrow_kafka_topic_partition_offset",
            "Latest offset the topic that Burrow is storing for this partition",
            ["cluster", "topic", "partition"],
        )

    @property
    def _gauges(self) -> list[GaugeVec]:
        return [
            self.consumer_total_lag,
            self.consumer_status,
            self.partition_status,
            self.consumer_partition_current_offset,
            self.consumer_partition_lag,
            self.topic_partition_offset,
        ]

    def delete_consumer_metrics(self, cluster: str, consumer: str) -> None:
        """Drop every gauge labelled with the consumer group."""
        labels = {"cluster": cluster, "consumer_group": consumer}
        self.consumer_total_lag.delete(labels)
        self.consumer_status.delete(labels)
        self.consumer_partition_lag.delete_partial_match(labels)
        self.consumer_partition_current_offset.delete_partial_match(labels)
        self.partition_status.delete_partial_match(labels)

    def delete_topic_metrics(self, cluster: str, topic: str) -> None:
        """Drop every gauge labelled with the topic."""
        labels = {"cluster": cluster, "topic": topic}
        self.topic_partition_offset.delete_partial_match(labels)
        # A deleted topic has no consumers left, so its consumer gauges go too.
        self.consumer_partition_lag.delete_partial_match(labels)
        self.consumer_partition_current_offset.delete_partial_match(labels)
        self.consumer_total_lag.delete_partial_match(labels)
        self.consumer_status.delete_partial_match(labels)

    def delete_consumer_topic_metrics(self, cluster: str, consumer: str, topic: str) -> None:
        """Drop the gauges labelled with both the consumer group and the topic."""
        labels = {"cluster": cluster, "consumer_group": consumer, "topic": topic}
        self.partition_status.delete_partial_match(labels)
        self.consumer_partition_current_offset.delete_partial_match(labels)
        self.consumer_partition_lag.delete_partial_match(labels)

    def collect(self, app: ApplicationContext) -> None:
        """Refresh every gauge from the current state of the subsystems."""
        for cluster in list_clusters(app):
            for consumer in list_consumers(app, cluster):
                status = get_full_consumer_status(app, cluster, consumer)
                if status is None or status.status == Status.NOTFOUND:
                    continue
                group_labels = {"cluster": cluster, "consumer_group": consumer}
                self.consumer_total_lag.set(group_labels, status.total_lag)
                self.consumer_status.set(group_labels, int(status.status))
                for partition in status.partitions:
                    labels = {
                        **group_labels,
                        "topic": partition.topic,
                        "partition": str(partition.partition),
                    }
                    self.consumer_partition_lag.set(labels, partition.current_lag)
                    if partition.complete == 1.0:
                        if partition.end is not None:
                            self.consumer_partition_current_offset.set(
                                labels, partition.end.offset
                            )
                        self.partition_status.set(labels, int(partition.status))

            for topic in list_topics(app, cluster):
                for number, offset in enumerate(get_topic_detail(app, cluster, topic)):
                    self.topic_partition_offset.set(
                        {"cluster": cluster, "topic": topic, "partition": str(number)},
                        offset,
                    )

    def render(self) -> str:
        """All non-empty gauge families in text exposition format, sorted by name."""
        return "".join(gauge.render() for gauge in sorted(self._gauges, key=lambda g: g.name))


def list_clusters(app: ApplicationContext) -> list[str]:
    return list(app.query_storage(StorageRequestType.FETCH_CLUSTERS) or [])


def list_consumers(app: ApplicationContext, cluster: str) -> list[str]:
    return list(app.query_storage(StorageRequestType.FETCH_CONSUMERS, cluster=cluster) or [])


def get_full_consumer_status(
    app: ApplicationContext, cluster: str, consumer: str
) -> ConsumerGroupStatus | None:
    return app.query_evaluator(cluster, consumer, show_all=True)


def list_topics(app: ApplicationContext, cluster: str) -> list[str]:
    return list(app.query_storage(StorageRequestType.FETCH_TOPICS, cluster=cluster) or [])


def get_topic_detail(app: ApplicationContext, cluster: str, topic: str) -> list[int]:
    return list(
        app.query_storage(StorageRequestType.FETCH_TOPIC, cluster=cluster, topic=topic) or []
    )