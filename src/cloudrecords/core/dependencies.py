"""Dependency injection container for the application."""

import logging
from typing import Optional

from cloudrecords.api.cloudkit_client import CloudKitWebClient
from cloudrecords.api.signing import RequestSigner
from cloudrecords.config.settings import Settings
from cloudrecords.stores.cloudkit import CloudKitWebStore
from cloudrecords.stores.memory import InMemoryRecordStore
from cloudrecords.utils.logger_setup import setup_logging

from .client import GatedRecordClient
from .notifier import LoggingNotifier


class DependencyContainer:
    """Container for managing application dependencies."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        logger_name: str = "cloudrecords",
        show_progress: bool = False,
    ):
        self.settings = settings or Settings.from_env()
        self.logger = setup_logging(
            logger_name, log_level=self.settings.log_level, log_dir=self.settings.log_dir
        )
        self.show_progress = show_progress

        # Initialize services
        self._store = None
        self._client = None

    @property
    def store(self):
        """Get or create the record store selected by the settings."""
        if self._store is None:
            self._store = self._build_store()
        return self._store

    @property
    def client(self) -> GatedRecordClient:
        """Get or create the gated record client."""
        if self._client is None:
            self._client = GatedRecordClient(
                self.store,
                scope=self.settings.scope,
                notifier=LoggingNotifier(self.get_logger("cloudrecords.operations")),
                logger_obj=self.get_logger("cloudrecords.client"),
            )
        return self._client

    def _build_store(self):
        settings = self.settings
        if settings.backend == "memory":
            settings.ensure_directories()
            return InMemoryRecordStore(
                data_dir=settings.data_dir,
                container_id=settings.container,
                logger_obj=self.get_logger("cloudrecords.stores.memory"),
            )

        signer = None
        if settings.key_id and settings.private_key_path:
            signer = RequestSigner.from_file(settings.key_id, settings.private_key_path)
        web_client = CloudKitWebClient(
            container=settings.container,
            environment=settings.environment,
            api_token=settings.api_token,
            web_auth_token=settings.web_auth_token,
            signer=signer,
            logger_obj=self.get_logger("cloudrecords.api"),
        )
        return CloudKitWebStore(
            web_client,
            account_scope=settings.scope,
            show_progress=self.show_progress,
            logger_obj=self.get_logger("cloudrecords.stores.cloudkit"),
        )

    async def aclose(self) -> None:
        """Close the store if one was built."""
        if self._store is not None:
            await self._store.close()
        self._store = None
        self._client = None

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Get a logger instance."""
        if name:
            return logging.getLogger(name)
        return self.logger
