"""
Built-in pattern definitions.

Declaration order matters only as the final tie-break between two
patterns with equal confidence for the same service.
"""

from __future__ import annotations

from .models import (
    Indicator,
    IndicatorKind,
    PatternDefinition,
    PatternFamily,
    PatternScope,
)

__all__ = ["BUILTIN_PATTERNS"]

K = IndicatorKind

BUILTIN_PATTERNS: list[PatternDefinition] = [
    # Stateless web tier
    PatternDefinition(
        id="web_application",
        name="Stateless Web Application",
        description="HTTP-serving workload without durable local state.",
        family=PatternFamily.WEB,
        indicators=[
            Indicator(
                kind=K.IMAGE_KEYWORD,
                weight=0.4,
                values=[
                    "nginx",
                    "apache",
                    "httpd",
                    "node",
                    "python",
                    "php",
                    "ruby",
                    "tomcat",
                    "jetty",
                    "caddy",
                    "django",
                    "flask",
                    "rails",
                ],
            ),
            Indicator(
                kind=K.PORT, weight=0.3, values=[80, 443, 3000, 5000, 8000, 8080, 8443]
            ),
            Indicator(
                kind=K.ENV_NAME, weight=0.2, values=["PORT", "HOST", "BASE_URL"]
            ),
            Indicator(kind=K.STATELESS, weight=0.1),
        ],
        confidence_threshold=0.6,
        recommendations=[
            "Run web workloads with at least two replicas behind a Service.",
            "Expose web workloads through an Ingress with TLS termination.",
            "Serve a dedicated health endpoint for liveness and readiness probes.",
        ],
    ),
    # Relational data store
    PatternDefinition(
        id="relational_database",
        name="Relational Database",
        description="SQL database keeping durable state.",
        family=PatternFamily.DATABASE,
        stateful=True,
        indicators=[
            Indicator(
                kind=K.IMAGE_KEYWORD,
                weight=0.5,
                values=["postgres", "mysql", "mariadb", "mssql", "cockroach", "percona"],
            ),
            Indicator(kind=K.PORT, weight=0.2, values=[5432, 3306, 1433, 26257]),
            Indicator(
                kind=K.ENV_NAME,
                weight=0.2,
                values=["POSTGRES", "MYSQL", "MARIADB", "DATABASE", "DB_"],
            ),
            Indicator(
                kind=K.VOLUME_TARGET, weight=0.1, values=["/var/lib", "/data"]
            ),
        ],
        confidence_threshold=0.5,
        recommendations=[
            "Run databases as StatefulSets with persistent volume claims.",
            "Schedule regular backups of database volumes.",
            "Keep database credentials in Secrets, never in plain environment.",
        ],
    ),
    # NoSQL data store
    PatternDefinition(
        id="nosql_database",
        name="NoSQL Data Store",
        description="Document, wide-column, search or graph store.",
        family=PatternFamily.DATABASE,
        stateful=True,
        indicators=[
            Indicator(
                kind=K.IMAGE_KEYWORD,
                weight=0.5,
                values=[
                    "mongo",
                    "cassandra",
                    "elasticsearch",
                    "opensearch",
                    "neo4j",
                    "couchdb",
                    "couchbase",
                    "influxdb",
                    "scylla",
                ],
            ),
            Indicator(
                kind=K.PORT, weight=0.2, values=[27017, 9042, 9200, 7474, 5984, 8086]
            ),
            Indicator(
                kind=K.ENV_NAME,
                weight=0.2,
                values=["MONGO", "CASSANDRA", "ELASTIC", "NEO4J", "COUCHDB"],
            ),
            Indicator(
                kind=K.VOLUME_TARGET, weight=0.1, values=["/data", "/var/lib", "/usr/share"]
            ),
        ],
        confidence_threshold=0.5,
        recommendations=[
            "Use a clustered topology with at least three members for NoSQL stores in production.",
        ],
    ),
    # Cache
    PatternDefinition(
        id="cache",
        name="In-Memory Cache",
        description="Volatile key/value cache.",
        family=PatternFamily.CACHE,
        indicators=[
            Indicator(
                kind=K.IMAGE_KEYWORD,
                weight=0.6,
                values=["redis", "memcached", "hazelcast", "varnish", "valkey", "keydb"],
            ),
            Indicator(kind=K.PORT, weight=0.2, values=[6379, 11211, 5701, 6081]),
            Indicator(kind=K.ENV_NAME, weight=0.2, values=["REDIS", "CACHE", "MEMCACHED"]),
        ],
        confidence_threshold=0.6,
        recommendations=[
            "Set an explicit memory limit and eviction policy on caches.",
        ],
    ),
    # Message queue
    PatternDefinition(
        id="message_queue",
        name="Message Queue",
        description="Broker for asynchronous messaging.",
        family=PatternFamily.MESSAGE_QUEUE,
        stateful=True,
        indicators=[
            Indicator(
                kind=K.IMAGE_KEYWORD,
                weight=0.6,
                values=["rabbitmq", "kafka", "activemq", "nats", "pulsar", "redpanda", "mosquitto"],
            ),
            Indicator(kind=K.PORT, weight=0.2, values=[5672, 9092, 61616, 4222, 6650, 1883]),
            Indicator(
                kind=K.ENV_NAME, weight=0.2, values=["QUEUE", "RABBITMQ", "KAFKA", "AMQP", "BROKER"]
            ),
        ],
        confidence_threshold=0.6,
        recommendations=[
            "Persist broker data so queued messages survive restarts.",
            "Monitor queue depth and consumer lag.",
        ],
    ),
    # Load balancer / reverse proxy
    PatternDefinition(
        id="load_balancer",
        name="Load Balancer / Reverse Proxy",
        description="Traffic entry point routing to upstream services.",
        family=PatternFamily.LOAD_BALANCER,
        indicators=[
            Indicator(
                kind=K.IMAGE_KEYWORD,
                weight=0.5,
                values=["haproxy", "traefik", "envoy", "nginx-proxy"],
            ),
            Indicator(kind=K.PORT, weight=0.3, values=[80, 443]),
            Indicator(kind=K.ENV_NAME, weight=0.2, values=["UPSTREAM", "BACKEND", "PROXY"]),
        ],
        confidence_threshold=0.7,
        recommendations=[
            "Prefer an Ingress controller over a self-managed proxy container.",
        ],
    ),
    # Object storage
    PatternDefinition(
        id="object_storage",
        name="Object Storage",
        description="S3-compatible blob storage server.",
        family=PatternFamily.STORAGE,
        stateful=True,
        indicators=[
            Indicator(kind=K.IMAGE_KEYWORD, weight=0.6, values=["minio", "seaweedfs", "ceph"]),
            Indicator(kind=K.PORT, weight=0.2, values=[9000, 9001]),
            Indicator(kind=K.PERSISTENT_VOLUME, weight=0.2),
        ],
        confidence_threshold=0.6,
        recommendations=[
            "Size object storage volumes for growth; resizing claims later is disruptive.",
        ],
    ),
    # ----- application-scope (aggregate) patterns ----------------------------
    PatternDefinition(
        id="microservices",
        name="Microservices Architecture",
        description="Many independently addressable services with inter-service links.",
        scope=PatternScope.APPLICATION,
        indicators=[
            Indicator(kind=K.MIN_SERVICES, weight=0.4, count=5),
            Indicator(kind=K.HAS_DEPENDENCIES, weight=0.3),
            Indicator(kind=K.MIN_DISTINCT_PATTERNS, weight=0.3, count=3),
        ],
        confidence_threshold=0.7,
        recommendations=[
            "Consider a service mesh for mTLS and traffic management between services.",
            "Apply NetworkPolicies so each service only accepts traffic from its dependents.",
            "Use distributed tracing to follow requests across services.",
        ],
    ),
    PatternDefinition(
        id="monolith_with_database",
        name="Monolith with Database",
        description="A single application tier backed by a database.",
        scope=PatternScope.APPLICATION,
        indicators=[
            Indicator(kind=K.MAX_SERVICES, weight=0.3, count=3),
            Indicator(kind=K.PATTERN_COUNT, weight=0.4, values=["web_application"], count=1),
            Indicator(
                kind=K.PATTERN_PRESENT,
                weight=0.3,
                values=["relational_database", "nosql_database"],
                count=1,
            ),
        ],
        confidence_threshold=1.0,
        recommendations=[
            "Scale the application tier horizontally before splitting it into services.",
        ],
    ),
    PatternDefinition(
        id="three_tier",
        name="Three-Tier Application",
        description="Presentation, application and data tiers.",
        scope=PatternScope.APPLICATION,
        indicators=[
            Indicator(
                kind=K.PATTERN_PRESENT,
                weight=0.35,
                values=["web_application", "load_balancer"],
                count=1,
            ),
            Indicator(
                kind=K.PATTERN_PRESENT,
                weight=0.35,
                values=["relational_database", "nosql_database"],
                count=1,
            ),
            Indicator(kind=K.MIN_SERVICES, weight=0.3, count=3),
        ],
        confidence_threshold=1.0,
        recommendations=[
            "Keep the data tier unreachable from outside the cluster.",
        ],
    ),
    PatternDefinition(
        id="event_driven",
        name="Event-Driven Topology",
        description="Services communicating through a shared message broker.",
        scope=PatternScope.APPLICATION,
        indicators=[
            Indicator(kind=K.PATTERN_PRESENT, weight=0.5, values=["message_queue"], count=1),
            Indicator(
                kind=K.PATTERN_DEPENDENTS, weight=0.5, values=["message_queue"], count=2
            ),
        ],
        confidence_threshold=1.0,
        recommendations=[
            "Scale consumers on queue depth rather than CPU.",
            "Make consumers idempotent to tolerate redelivery.",
        ],
    ),
]
