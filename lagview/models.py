"""Data exchanged between the HTTP layer and the storage and evaluator subsystems."""

from __future__ import annotations

import queue
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import Any


class Status(IntEnum):
    """Health of a consumer group or partition, ordered by severity."""

    NOTFOUND = 0
    OK = 1
    WARN = 2
    ERR = 3
    STOP = 4
    STALL = 5
    REWIND = 6


class LogLevel(str, Enum):
    """Application log levels that can be read and changed at runtime."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @classmethod
    def parse(cls, name: str) -> LogLevel:
        """Return the level for a case-insensitive name, accepting common aliases."""
        aliases = {
            "debug": cls.DEBUG,
            "trace": cls.DEBUG,
            "info": cls.INFO,
            "warning": cls.WARN,
            "warn": cls.WARN,
            "error": cls.ERROR,
            "fatal": cls.FATAL,
        }
        try:
            return aliases[str(name).lower()]
        except KeyError:
            raise ValueError(f"unknown log level: {name!r}") from None


class StorageRequestType(Enum):
    """Kinds of request the storage subsystem answers."""

    FETCH_CLUSTERS = auto()
    FETCH_TOPICS = auto()
    FETCH_TOPIC = auto()
    FETCH_CONSUMERS_FOR_TOPIC = auto()
    FETCH_CONSUMERS = auto()
    FETCH_CONSUMER = auto()
    SET_DELETE_GROUP = auto()


def _deliver(reply: Future | None, value: Any) -> None:
    if reply is None:
        raise ValueError("this request does not expect a reply")
    reply.set_result(value)


@dataclass
class StorageRequest:
    """A request sent to the storage subsystem, with an optional reply slot."""

    request_type: StorageRequestType
    cluster: str = ""
    group: str = ""
    topic: str = ""
    reply: Future | None = None

    def respond(self, value: Any = None) -> None:
        """Answer the request; None means nothing was found."""
        _deliver(self.reply, value)


@dataclass
class EvaluatorRequest:
    """A request for the evaluated status of a consumer group."""

    cluster: str
    group: str
    show_all: bool = False
    reply: Future | None = None

    def respond(self, status: ConsumerGroupStatus | None = None) -> None:
        """Answer the request with the group's status."""
        _deliver(self.reply, status)


@dataclass
class ConsumerOffset:
    """One committed offset of a consumer for a partition."""

    offset: int = 0
    timestamp: int = 0
    observed_at: int = 0
    lag: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "offset": self.offset,
            "timestamp": self.timestamp,
            "observedAt": self.observed_at,
            "lag": self.lag,
        }


def _offset_dict(offset: ConsumerOffset | None) -> dict[str, Any] | None:
    return None if offset is None else offset.to_dict()


@dataclass
class ConsumerPartition:
    """Stored offsets and ownership of one partition for a consumer group."""

    offsets: list[ConsumerOffset | None] = field(default_factory=list)
    owner: str = ""
    client_id: str = ""
    current_lag: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "offsets": [_offset_dict(offset) for offset in self.offsets],
            "owner": self.owner,
            "client_id": self.client_id,
            "current-lag": self.current_lag,
        }


@dataclass
class PartitionStatus:
    """Evaluated status of one partition for a consumer group."""

    topic: str = ""
    partition: int = 0
    owner: str = ""
    client_id: str = ""
    status: Status = Status.NOTFOUND
    start: ConsumerOffset | None = None
    end: ConsumerOffset | None = None
    current_lag: int = 0
    complete: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "partition": self.partition,
            "owner": self.owner,
            "client_id": self.client_id,
            "status": Status(self.status).name,
            "start": _offset_dict(self.start),
            "end": _offset_dict(self.end),
            "current_lag": self.current_lag,
            "complete": float(self.complete),
        }


@dataclass
class ConsumerGroupStatus:
    """Evaluated status of a whole consumer group."""

    cluster: str = ""
    group: str = ""
    status: Status = Status.NOTFOUND
    complete: float = 0.0
    partitions: list[PartitionStatus] = field(default_factory=list)
    total_partitions: int = 0
    maxlag: PartitionStatus | None = None
    total_lag: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster": self.cluster,
            "group": self.group,
            "status": Status(self.status).name,
            "complete": float(self.complete),
            "partitions": [partition.to_dict() for partition in self.partitions],
            "partition_count": self.total_partitions,
            "maxlag": None if self.maxlag is None else self.maxlag.to_dict(),
            "totallag": self.total_lag,
        }


@dataclass
class ApplicationContext:
    """Shared state: the log level, readiness and the subsystem request queues."""

    log_level: LogLevel = LogLevel.INFO
    app_ready: bool = False
    storage_channel: queue.Queue = field(default_factory=queue.Queue)
    evaluator_channel: queue.Queue = field(default_factory=queue.Queue)
    reply_timeout: float | None = None

    def query_storage(
        self,
        request_type: StorageRequestType,
        cluster: str = "",
        group: str = "",
        topic: str = "",
    ) -> Any:
        """Send a storage request and wait for its answer."""
        request = StorageRequest(request_type, cluster, group, topic, reply=Future())
        self.storage_channel.put(request)
        return request.reply.result(timeout=self.reply_timeout)

    def send_storage(
        self,
        request_type: StorageRequestType,
        cluster: str = "",
        group: str = "",
        topic: str = "",
    ) -> StorageRequest:
        """Send a storage request that expects no answer."""
        request = StorageRequest(request_type, cluster, group, topic)
        self.storage_channel.put(request)
        return request

    def query_evaluator(
        self, cluster: str, group: str, show_all: bool = False
    ) -> ConsumerGroupStatus | None:
        """Ask the evaluator for a group's status and wait for it."""
        request = EvaluatorRequest(cluster, group, show_all, reply=Future())
        self.evaluator_channel.put(request)
        return request.reply.result(timeout=self.reply_timeout)