"""Candidate values for the foreign-key columns of a table."""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Tuple

from ..database.errors import BackendError, PartialResolutionError
from ..database.gateway import BackendGateway
from ..database.models import ForeignKeyDescriptor, ForeignKeyOption
from .notifications import NotificationQueue

logger = logging.getLogger(__name__)

ForeignKeyOptions = Dict[str, List[ForeignKeyOption]]


class ForeignKeyResolver:
    """Fetches option lists, one backend call per foreign-key column.

    Nothing is cached here: referenced tables may change between two
    form openings, so every call goes to the backend.
    """

    def __init__(self, gateway: BackendGateway, notifications: Optional[NotificationQueue] = None):
        self.gateway = gateway
        self.notifications = notifications

    async def _resolve_column(
        self, column: str, descriptor: ForeignKeyDescriptor
    ) -> Tuple[str, List[ForeignKeyOption], Optional[str]]:
        try:
            options = await self.gateway.get_foreign_key_options(descriptor)
        except BackendError as e:
            logger.warning(f"Could not load options for {column} from {descriptor.referenced_table}: {e}")
            if self.notifications is not None:
                self.notifications.error(f"Failed to load options for {column}: {e}")
            return column, [], str(e)
        return column, options, None

    async def resolve_options(
        self,
        foreign_keys: Mapping[str, ForeignKeyDescriptor],
        strict: bool = False,
    ) -> ForeignKeyOptions:
        """Resolve every column concurrently.

        A failing column gets an empty list and does not stop the others.
        With ``strict=True`` a :class:`PartialResolutionError` carrying the
        partial result is raised once all columns have been tried.
        """
        results = await asyncio.gather(
            *(self._resolve_column(column, descriptor) for column, descriptor in foreign_keys.items())
        )
        options: ForeignKeyOptions = {}
        failures: Dict[str, str] = {}
        for column, column_options, error in results:
            options[column] = column_options
            if error is not None:
                failures[column] = error
        if failures and strict:
            raise PartialResolutionError(options, failures)
        return options
