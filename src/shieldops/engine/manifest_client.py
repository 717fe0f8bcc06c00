"""Manifest client — load the trusted digest mapping from the content provider.

Any network or parse failure is logged and an empty :class:`Manifest` is
returned; every file in that pass then classifies as unregistered.
"""
from __future__ import annotations

import structlog

from shieldops.config import DEFAULT_MANIFEST_PATH
from shieldops.domain.manifest import Manifest
from shieldops.infrastructure.external import ContentProvider
from shieldops.shared.exceptions import ManifestParseError, NetworkError

logger = structlog.get_logger(__name__)


class ManifestClient:
    """Retrieves and parses the manifest resource."""

    def __init__(self, provider: ContentProvider, manifest_path: str = DEFAULT_MANIFEST_PATH) -> None:
        self._provider = provider
        self.manifest_path = manifest_path

    async def load(self) -> Manifest:
        """Fetch and parse the manifest; any failure yields an empty manifest."""
        try:
            payload = await self._provider.fetch_manifest(self.manifest_path)
            manifest = Manifest.from_json(payload)
        except NetworkError as exc:
            logger.error(
                "manifest_fetch_failed",
                coordinates=str(self._provider.coordinates),
                manifest_path=self.manifest_path,
                status_code=exc.status_code,
                error=exc.message,
            )
            return Manifest.empty()
        except ManifestParseError as exc:
            logger.error(
                "manifest_parse_failed",
                coordinates=str(self._provider.coordinates),
                manifest_path=self.manifest_path,
                error=exc.message,
            )
            return Manifest.empty()
        except Exception as exc:
            logger.error(
                "manifest_load_failed",
                coordinates=str(self._provider.coordinates),
                manifest_path=self.manifest_path,
                error=str(exc),
                exc_info=True,
            )
            return Manifest.empty()

        logger.info(
            "manifest_loaded",
            coordinates=str(self._provider.coordinates),
            entries=len(manifest),
            schema_version=manifest.schema_version,
        )
        return manifest
