"""
Uniqueness Prober - Batches of uuids verified unused

Candidates are generated in bulk and checked with one existence (``IN`` list)
query per location (registry, tracked table or drive document table).
Anything already in use is thrown away and only the shortfall is generated
again, for a bounded number of rounds.
"""

from collections.abc import Sequence

from uuid_registry.codec import IdFactory, default_codec
from uuid_registry.kernel.errors import ProbeRoundsExceeded
from uuid_registry.kernel.logging import get_logger
from uuid_registry.kernel.metrics import (
    collisions_total,
    identifiers_generated_total,
    probe_rounds_total,
)
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import Storage
from uuid_registry.models import RegistryContext
from uuid_registry.registry_store import RegistryStore, any_of_predicate

logger = get_logger(__name__)


class UniquenessProber:
    """
    Produces uuids absent from every location the context cares about

    Locations checked:
    - the registry table, unless the context disables the tracker
    - the context's table (by its uuid column), when a table is set
    - otherwise the drive document table, when the context is for drive documents
    """

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

    def _find_in_table(self, table: str, column: str, uuids: Sequence[bytes]) -> set[bytes]:
        rows = self.storage.execute(
            f"SELECT {column} FROM {table} WHERE {any_of_predicate(column, len(uuids))}",
            list(uuids),
        )
        return {bytes(row[column]) for row in rows if row[column] is not None}

    def find_used(self, uuids: Sequence[bytes]) -> set[bytes]:
        """Return the candidates that are already taken somewhere"""
        if not uuids:
            return set()
        used: set[bytes] = set()

        if not self.context.disable_tracker:
            found = self.registry_store.find_existing(uuids)
            if found:
                collisions_total.labels(location="registry").inc(len(found))
            used |= found

        if self.context.table_name:
            found = self._find_in_table(
                self.context.table_name, self.settings.uuid_column, uuids
            )
            if found:
                collisions_total.labels(location="table").inc(len(found))
            used |= found
        elif self.context.document_drive:
            found = self._find_in_table(
                self.settings.document_table, self.settings.document_column, uuids
            )
            if found:
                collisions_total.labels(location="documents").inc(len(found))
            used |= found

        return used

    def get_unused_uuid_batch(self, limit: int = 10) -> list[bytes]:
        """
        Return exactly ``limit`` uuids that are unused at the moment of checking

        Args:
            limit: Number of uuids wanted (0 or less returns an empty list)

        Returns:
            Unused uuids in generation order

        Raises:
            ProbeRoundsExceeded: If collisions persist for max_probe_rounds rounds
        """
        if limit <= 0:
            return []

        accepted: list[bytes] = []
        seen: set[bytes] = set()
        rounds = 0

        while len(accepted) < limit:
            if rounds >= self.settings.max_probe_rounds:
                logger.error(
                    "Unable to assemble an unused uuid batch",
                    table_name=self.context.table_name,
                    wanted=limit,
                    outstanding=limit - len(accepted),
                    rounds=rounds,
                )
                raise ProbeRoundsExceeded(rounds, limit - len(accepted))

            rounds += 1
            if rounds > 1:
                probe_rounds_total.inc()
                logger.warning(
                    "uuid collision in batch, generating replacements",
                    table_name=self.context.table_name,
                    round=rounds,
                    outstanding=limit - len(accepted),
                )

            wanted = limit - len(accepted)
            candidates: list[bytes] = []
            for _ in range(wanted):
                candidate = self.id_factory.generate()
                if candidate in seen:
                    collisions_total.labels(location="batch").inc()
                    continue
                seen.add(candidate)
                candidates.append(candidate)
            identifiers_generated_total.labels(path="batch").inc(wanted)

            used = self.find_used(candidates)
            accepted.extend(c for c in candidates if c not in used)

        return accepted
