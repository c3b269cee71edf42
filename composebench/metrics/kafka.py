"""
Kafka broker collector.

Expects the broker metrics exported through the Prometheus JMX exporter.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from composebench.metrics.prometheus.specialized import SpecializedCollector, quote_label

TYPE = "kafka"

BYTES_PER_MEGABYTE = 1048576


class KafkaSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    topics: List[str] = Field(default_factory=list)

    @field_validator("topics", mode="before")
    @classmethod
    def no_topics(cls, v):
        return [] if v is None else v


class KafkaCollector(SpecializedCollector):
    """Reports message and byte throughput per topic."""

    TYPE = TYPE
    RESOURCE_KEY = "topics"
    SETTINGS_MODEL = KafkaSettings

    def build_queries(self, cfg):
        queries = []
        for topic in cfg.topics:
            selector = f"{{topic={quote_label(topic)}}}"
            queries.extend(
                [
                    {
                        "name": f"msg-rate-in-per-second[{topic}]",
                        "query": f"rate(kafka_server_messages_in_per_sec_per_topic_total{selector}[2s])",
                        "unit": "msg/s",
                        "interval": "1s",
                    },
                    {
                        "name": f"msg-megabytes-in-per-second[{topic}]",
                        "query": f"rate(kafka_server_total_bytes_in_per_sec_per_topic{selector}[2s])/{BYTES_PER_MEGABYTE}",
                        "unit": "MB/s",
                        "interval": "1s",
                    },
                    {
                        "name": f"msg-megabytes-out-per-second[{topic}]",
                        "query": f"rate(kafka_server_total_bytes_out_per_sec_per_topic{selector}[2s])/{BYTES_PER_MEGABYTE}",
                        "unit": "MB/s",
                        "interval": "1s",
                    },
                ]
            )
        return queries


def register(registry):
    registry.register(TYPE, KafkaCollector)
