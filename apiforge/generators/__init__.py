"""Artifact generators: data types, client, service, endpoint, field mapper."""

from __future__ import annotations

import jinja2

from .base import ArtifactGenerator, GeneratedFile, create_environment, write_source
from .client import ClientGenerator
from .data_types import DataTypeGenerator
from .endpoint import EndpointGenerator
from .field_mapper import FieldMapperGenerator
from .service import ServiceGenerator

__all__ = [
    "ArtifactGenerator",
    "ClientGenerator",
    "DataTypeGenerator",
    "EndpointGenerator",
    "FieldMapperGenerator",
    "GeneratedFile",
    "ServiceGenerator",
    "create_environment",
    "default_generators",
    "write_source",
]


def default_generators(env: jinja2.Environment | None = None) -> list[ArtifactGenerator]:
    """All generators in emission order, sharing one template environment."""
    env = env or create_environment()
    return [
        DataTypeGenerator(env),
        ClientGenerator(env),
        ServiceGenerator(env),
        EndpointGenerator(env),
        FieldMapperGenerator(env),
    ]
