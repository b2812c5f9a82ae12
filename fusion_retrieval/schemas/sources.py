"""Knowledge Source Models.

A knowledge source is an external system queried alongside the memory
store. Each source type carries its own configuration variant, validated
when the source is registered rather than when it is first queried.

Pattern: Tagged variant configuration (one model per adapter kind)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Literal, get_args, get_origin

from pydantic import (
    ConfigDict,
    Field,
    SerializeAsAny,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from fusion_retrieval.core.constants import DEFAULT_PROJECT_ID
from fusion_retrieval.core.exceptions import FusionValidationError
from fusion_retrieval.schemas.search import CamelModel


# =============================================================================
# Enums
# =============================================================================


class SourceType(str, Enum):
    """Adapter kinds a knowledge source can be backed by."""

    SEARCH_ENGINE = "search_engine"
    VECTOR_STORE = "vector_store"
    GRAPH_STORE = "graph_store"
    FILE_TREE = "file_tree"
    RELATIONAL_STORE = "relational_store"
    EXTERNAL_API = "external_api"


class SourceState(str, Enum):
    """Lifecycle state of a source as seen by the orchestrator.

    disabled -> enabled: admin toggle
    enabled -> degraded: N consecutive failed queries
    degraded -> enabled: one successful probe
    """

    DISABLED = "disabled"
    ENABLED = "enabled"
    DEGRADED = "degraded"


# =============================================================================
# Per-type configuration variants
# =============================================================================


class SourceConfig(CamelModel):
    """Base for per-type source configuration.

    Unknown keys are kept so that admin tooling can store display data.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )

    display_name: ClassVar[str] = ""
    summary: ClassVar[str] = ""


class SearchEngineConfig(SourceConfig):
    """Full-text search engine exposing an Elasticsearch-style ``_search`` API."""

    display_name: ClassVar[str] = "Search Engine"
    summary: ClassVar[str] = "Full-text search engine (Elasticsearch/OpenSearch style)"

    endpoint: str = Field(..., min_length=1, description="Search engine base URL")
    index_name: str = Field(..., min_length=1, description="Index to search")
    api_key: str | None = Field(default=None, description="API key", json_schema_extra={"secret": True})
    fields: list[str] = Field(
        default_factory=lambda: ["content", "title", "description"],
        description="Document fields to match against",
    )


class VectorStoreConfig(SourceConfig):
    """Vector database exposing a Chroma-style collection query API."""

    display_name: ClassVar[str] = "Vector Store"
    summary: ClassVar[str] = "Vector database queried by text (Chroma style)"

    endpoint: str = Field(..., min_length=1, description="Vector store base URL")
    collection: str = Field(..., min_length=1, description="Collection id")
    distance: Literal["cosine", "l2", "ip"] = Field(
        default="cosine",
        description="Distance metric the collection was built with",
    )


class GraphStoreConfig(SourceConfig):
    """Graph/vector hybrid store exposing a Weaviate-style GraphQL API."""

    display_name: ClassVar[str] = "Graph Store"
    summary: ClassVar[str] = "Graph-backed semantic store (Weaviate style GraphQL)"

    endpoint: str = Field(..., min_length=1, description="GraphQL base URL")
    class_name: str = Field(..., min_length=1, description="Object class to search")
    api_key: str | None = Field(default=None, description="API key", json_schema_extra={"secret": True})
    content_property: str = Field(default="content", description="Property holding text")


class FileTreeConfig(SourceConfig):
    """Local directory of text documents."""

    display_name: ClassVar[str] = "File Tree"
    summary: ClassVar[str] = "Local documents and file system"

    file_path: str = Field(..., min_length=1, description="Root directory")
    file_types: list[str] = Field(
        default_factory=lambda: [".md", ".txt"],
        description="File suffixes to search",
    )
    max_file_bytes: int = Field(default=1_000_000, gt=0, description="Skip larger files")


class RelationalStoreConfig(SourceConfig):
    """Relational table searched with keyword predicates."""

    display_name: ClassVar[str] = "Relational Store"
    summary: ClassVar[str] = "Relational database table (SQLite connection string)"

    connection_string: str = Field(..., min_length=1, description="sqlite:///path/to/db")
    table: str = Field(..., min_length=1, description="Table name")
    content_field: str = Field(..., min_length=1, description="Column holding text")
    id_field: str = Field(default="id", description="Primary key column")
    timestamp_field: str | None = Field(default=None, description="Timestamp column")

    @field_validator("connection_string")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if not value.startswith("sqlite:///"):
            raise ValueError("only sqlite:/// connection strings are supported")
        return value

    @field_validator("table", "content_field", "id_field", "timestamp_field")
    @classmethod
    def _check_identifier(cls, value: str | None) -> str | None:
        if value is not None and not value.replace("_", "").isalnum():
            raise ValueError("must be a plain SQL identifier")
        return value


class ExternalApiConfig(SourceConfig):
    """Generic third-party HTTP search API."""

    display_name: ClassVar[str] = "External API"
    summary: ClassVar[str] = "Third-party knowledge base API"

    endpoint: str = Field(..., min_length=1, description="Search URL")
    api_key: str | None = Field(default=None, description="Bearer token", json_schema_extra={"secret": True})
    method: Literal["GET", "POST"] = Field(default="POST", description="HTTP method")
    results_field: str = Field(default="results", description="Response key holding hits")
    content_field: str = Field(default="content", description="Hit key holding text")
    score_field: str = Field(default="score", description="Hit key holding a [0, 1] score")


SOURCE_CONFIG_MODELS: dict[SourceType, type[SourceConfig]] = {
    SourceType.SEARCH_ENGINE: SearchEngineConfig,
    SourceType.VECTOR_STORE: VectorStoreConfig,
    SourceType.GRAPH_STORE: GraphStoreConfig,
    SourceType.FILE_TREE: FileTreeConfig,
    SourceType.RELATIONAL_STORE: RelationalStoreConfig,
    SourceType.EXTERNAL_API: ExternalApiConfig,
}


# =============================================================================
# Knowledge Source
# =============================================================================


class KnowledgeSource(CamelModel):
    """A configured external knowledge source.

    Instances are immutable; the registry replaces them on update.

    Attributes:
        id: Unique source identifier
        name: Display name
        type: Adapter kind
        config: Configuration variant matching ``type``
        priority: 1-10, 10 being highest; breaks ranking ties
        enabled: Admin toggle
        project_id: Owning project
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: SourceType
    config: SerializeAsAny[SourceConfig]
    priority: int = Field(default=5, ge=1, le=10)
    enabled: bool = True
    project_id: str = Field(default=DEFAULT_PROJECT_ID, min_length=1)
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "name", "project_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="before")
    @classmethod
    def _parse_config_variant(cls, data: Any) -> Any:
        """Parse ``config`` into the variant selected by ``type``."""
        if not isinstance(data, dict):
            return data
        try:
            source_type = SourceType(data.get("type"))
        except ValueError:
            return data  # field validation reports the bad type
        config = data.get("config")
        if config is None:
            config = {}
        if isinstance(config, dict):
            data = {**data, "config": SOURCE_CONFIG_MODELS[source_type].model_validate(config)}
        return data

    @model_validator(mode="after")
    def _config_matches_type(self) -> KnowledgeSource:
        expected = SOURCE_CONFIG_MODELS[self.type]
        if not isinstance(self.config, expected):
            raise ValueError(f"config for type '{self.type.value}' must be {expected.__name__}")
        return self

    @classmethod
    def parse(cls, data: dict[str, Any]) -> KnowledgeSource:
        """Validate a source definition, raising FusionValidationError.

        Args:
            data: Source definition (camelCase or snake_case keys)

        Returns:
            Validated KnowledgeSource

        Raises:
            FusionValidationError: If required fields are missing or invalid
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = [
                {
                    # Config variant errors carry no location of their own
                    "field": ".".join(str(part) for part in error.get("loc", ())) or "config",
                    "message": error.get("msg", "Invalid value"),
                }
                for error in e.errors()
            ]
            first = errors[0]["field"] if errors else "config"
            detail = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            raise FusionValidationError(
                f"Invalid knowledge source: {detail}",
                field=first,
                errors=errors,
            ) from e

    def to_record(self) -> dict[str, Any]:
        """Serialize for a source-config store (JSON-compatible, camelCase)."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Health bookkeeping
# =============================================================================


@dataclass(frozen=True)
class SourceHealth:
    """Health record the registry keeps per source.

    Attributes:
        degraded: Excluded from default source resolution
        consecutive_failures: Failures since the last success
        last_checked: When the source last answered or failed
        last_error: Message of the most recent failure
    """

    degraded: bool = False
    consecutive_failures: int = 0
    last_checked: datetime | None = None
    last_error: str | None = None


def source_state(source: KnowledgeSource, health: SourceHealth) -> SourceState:
    """Derive the lifecycle state of a source."""
    if not source.enabled:
        return SourceState.DISABLED
    if health.degraded:
        return SourceState.DEGRADED
    return SourceState.ENABLED


# =============================================================================
# Source type catalogue (GET /source-types)
# =============================================================================


class ConfigFieldInfo(CamelModel):
    """One configuration field of a source type."""

    name: str
    type: str
    required: bool
    description: str = ""


class SourceTypeInfo(CamelModel):
    """Catalogue entry for one adapter kind."""

    type: SourceType
    name: str
    description: str
    config_fields: list[ConfigFieldInfo]


def _field_type_name(annotation: Any, secret: bool) -> str:
    if secret:
        return "password"
    origin = get_origin(annotation)
    if origin is list or annotation is list:
        return "array"
    if origin is Literal:
        return "enum:" + "|".join(str(arg) for arg in get_args(annotation))
    if annotation is int:
        return "integer"
    if annotation is bool:
        return "boolean"
    return "string"


def source_type_catalogue() -> list[SourceTypeInfo]:
    """Describe every adapter kind and its configuration fields."""
    catalogue: list[SourceTypeInfo] = []
    for source_type, model in SOURCE_CONFIG_MODELS.items():
        fields = []
        for name, info in model.model_fields.items():
            extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
            fields.append(
                ConfigFieldInfo(
                    name=info.alias or to_camel(name),
                    type=_field_type_name(info.annotation, bool(extra.get("secret"))),
                    required=info.is_required(),
                    description=info.description or "",
                )
            )
        catalogue.append(
            SourceTypeInfo(
                type=source_type,
                name=model.display_name,
                description=model.summary,
                config_fields=fields,
            )
        )
    return catalogue
