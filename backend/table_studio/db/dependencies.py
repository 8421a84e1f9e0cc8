"""FastAPI dependency providers for gateways and edit sessions."""

from functools import lru_cache

from table_studio.config import get_settings
from table_studio.db.session import get_engine
from table_studio.services.edit_sessions import EditSessionRegistry
from table_studio.services.gateways import RecordGateway
from table_studio.services.http_gateway import HttpSchemaServiceClient
from table_studio.services.references import ForeignKeyResolver
from table_studio.services.sql_gateway import SqlAlchemyRecordGateway
from table_studio.services.table_editor import TableEditOrchestrator


@lru_cache
def get_schema_service() -> HttpSchemaServiceClient:
    """Remote schema service client shared across requests."""

    return HttpSchemaServiceClient.from_settings(get_settings())


@lru_cache
def get_record_gateway() -> RecordGateway:
    """Direct database gateway when configured, otherwise the schema service's record API."""

    engine = get_engine()
    if engine is None:
        return get_schema_service()
    return SqlAlchemyRecordGateway(engine, system_columns=tuple(get_settings().system_columns))


def get_reference_resolver() -> ForeignKeyResolver:
    """Per-request resolver; preview state is not shared between callers."""

    return ForeignKeyResolver(get_record_gateway(), get_schema_service())


@lru_cache
def get_edit_sessions() -> EditSessionRegistry:
    """Process-wide edit session registry."""

    def build_orchestrator() -> TableEditOrchestrator:
        schema_service = get_schema_service()
        return TableEditOrchestrator(
            schema_service,
            schema_service,
            reference_reader=schema_service,
            system_columns=tuple(get_settings().system_columns),
        )

    return EditSessionRegistry(build_orchestrator)
