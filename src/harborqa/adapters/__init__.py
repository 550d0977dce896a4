"""Built-in unit and test kinds."""

from harborqa.adapters.container import ContainerUnit
from harborqa.adapters.http_test import HTTPTest
from harborqa.adapters.http_unit import HTTPUnit
from harborqa.adapters.httpmock_unit import HTTPMockUnit
from harborqa.adapters.minio_test import MinioTest
from harborqa.adapters.minio_unit import MinioUnit
from harborqa.adapters.mongo_test import MongoTest
from harborqa.adapters.mongo_unit import MongoUnit
from harborqa.adapters.postgres_test import PostgresTest
from harborqa.adapters.postgres_unit import PostgresUnit
from harborqa.core.registry import Registries


def register_builtin_adapters(registries: Registries) -> Registries:
    for unit in (HTTPUnit, PostgresUnit, HTTPMockUnit, MongoUnit, MinioUnit):
        registries.units.register(unit.kind, unit.from_config)
    for test in (HTTPTest, PostgresTest, MongoTest, MinioTest):
        registries.tests.register(test.kind, test.from_config)
    return registries


def builtin_registries() -> Registries:
    """Fresh registries holding every built-in kind."""
    return register_builtin_adapters(Registries())


__all__ = [
    "ContainerUnit",
    "HTTPMockUnit",
    "HTTPTest",
    "HTTPUnit",
    "MinioTest",
    "MinioUnit",
    "MongoTest",
    "MongoUnit",
    "PostgresTest",
    "PostgresUnit",
    "builtin_registries",
    "register_builtin_adapters",
]
