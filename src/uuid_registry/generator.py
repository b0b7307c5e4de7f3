"""
Single-Entity Generator - One verified uuid at a time

Used when application code creates a single row and needs its uuid right
away. Each candidate is checked individually; a collision is logged and
retried up to the configured cap.
"""

from uuid_registry.codec import IdFactory, default_codec
from uuid_registry.kernel.errors import IdentifierExhausted
from uuid_registry.kernel.logging import get_logger
from uuid_registry.kernel.metrics import collisions_total, identifiers_generated_total
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import Storage
from uuid_registry.models import RegistryContext
from uuid_registry.registry_store import RegistryStore

logger = get_logger(__name__)


class SingleEntityGenerator:
    """Issues and records one unique uuid per call"""

    def __init__(
        self,
        storage: Storage,
        context: RegistryContext,
        registry_store: RegistryStore,
        settings: RegistrySettings | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        self.storage = storage
        self.context = context
        self.registry_store = registry_store
        self.settings = settings or registry_store.settings
        self.id_factory = id_factory or default_codec

    def _taken_in(self, table: str, column: str, uuid: bytes) -> bool:
        return (
            self.storage.execute_scalar_count(
                f"SELECT COUNT(*) FROM {table} WHERE {column} = ?", (uuid,)
            )
            > 0
        )

    def _is_unique(self, uuid: bytes) -> bool:
        if not self.context.disable_tracker and self.registry_store.exists(uuid):
            collisions_total.labels(location="registry").inc()
            return False
        if self.context.table_name:
            if self._taken_in(self.context.table_name, self.settings.uuid_column, uuid):
                collisions_total.labels(location="table").inc()
                return False
        elif self.context.document_drive:
            if self._taken_in(self.settings.document_table, self.settings.document_column, uuid):
                collisions_total.labels(location="documents").inc()
                return False
        return True

    def create_uuid(self) -> bytes:
        """
        Generate, verify and record one uuid

        The registry row is written with the caller's connection, so it
        belongs to the caller's transaction when one is open.

        Returns:
            The new uuid (16 bytes)

        Raises:
            IdentifierExhausted: After max_tries colliding attempts
        """
        for attempt in range(1, self.settings.max_tries + 1):
            candidate = self.id_factory.generate()
            identifiers_generated_total.labels(path="single").inc()
            if self._is_unique(candidate):
                if not self.context.disable_tracker:
                    self.registry_store.insert_one(candidate, self.context)
                return candidate
            logger.warning(
                "Collision when creating a unique uuid",
                attempt=attempt,
                uuid=candidate,
                table_name=self.context.table_name,
            )

        logger.error(
            "Unable to create a unique uuid",
            attempts=self.settings.max_tries,
            table_name=self.context.table_name,
        )
        raise IdentifierExhausted(self.settings.max_tries)
