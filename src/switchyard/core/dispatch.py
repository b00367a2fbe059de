"""Compiled dispatch data.

The Collector produces these models and the Matcher consumes them. They only
hold strings, lists and dicts so they can be serialized to the compiled-data
cache with ``model_dump_json`` and restored with ``model_validate_json``.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

# Bucket for routes that accept any HTTP method
ANY_METHOD = "ANY"


class VariantTag(BaseModel):
    """One (route, variant) alternative inside a mark chunk."""

    route: str = Field(description="Route name")
    attributes: list[str] = Field(
        default_factory=list, description="Attribute names present in this variant"
    )
    groups: list[int] = Field(
        default_factory=list, description="Group number of each attribute, relative to the tag"
    )


class MarkChunk(BaseModel):
    """Chunk compiled into one combined alternation.

    Every alternative is wrapped in a named group whose name is the tag; the
    tag of the matched alternative identifies the route and variant.
    """

    kind: Literal["mark"] = "mark"
    routes: list[str] = Field(default_factory=list, description="Route names in chunk order")
    regex: str = Field(description="Combined alternation")
    tags: dict[str, VariantTag] = Field(default_factory=dict)


class NamedEntry(BaseModel):
    """One route of a named chunk."""

    route: str = Field(description="Route name")
    regex: str = Field(description="Regex with named captures")
    captures: dict[str, str] = Field(
        default_factory=dict, description="Group alias -> attribute name"
    )


class NamedChunk(BaseModel):
    """Chunk of named-capture regexes tried in sequence."""

    kind: Literal["named"] = "named"
    routes: list[str] = Field(default_factory=list, description="Route names in chunk order")
    entries: list[NamedEntry] = Field(default_factory=list)


Chunk = Annotated[MarkChunk | NamedChunk, Field(discriminator="kind")]


class DispatchData(BaseModel):
    """Dispatch groups for every HTTP method bucket."""

    strategy: Literal["mark", "named"] = Field(default="mark")
    chunk_size: int = Field(default=15, ge=1)
    groups: dict[str, list[Chunk]] = Field(
        default_factory=dict, description="HTTP method -> ordered chunks"
    )

    def route_count(self) -> int:
        """Count distinct route names across all buckets."""
        return len({name for chunks in self.groups.values() for c in chunks for name in c.routes})
