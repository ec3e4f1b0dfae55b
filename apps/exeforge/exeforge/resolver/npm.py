"""npm registry metadata resolver.

Uses the public registry's per-version document endpoint:

    GET {registry}/{name}/{version}

The registry accepts dist-tags in the version slot, so "latest" resolves to
the newest published version without fetching the full packument. Scoped
names are sent as ``@scope%2Fname``.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from exeforge.resolver.types import (
    Ecosystem,
    PackageMetadata,
    PackageSpec,
    ResolutionError,
    ResolutionFailure,
    normalize_description,
    normalize_keywords,
)

logger = logging.getLogger(__name__)

NPM_REGISTRY_URL = "https://registry.npmjs.org"


def _package_path(name: str, version: str) -> str:
    return f"/{quote(name, safe='@')}/{quote(version, safe='')}"


class NpmResolver:
    """Resolves npm package metadata against the registry HTTP API."""

    ecosystem = Ecosystem.NPM

    def __init__(
        self,
        registry_url: str = NPM_REGISTRY_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._registry_url = registry_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def resolve(self, spec: PackageSpec) -> PackageMetadata:
        path = _package_path(spec.name, spec.version)
        logger.info("Resolving npm package %s@%s", spec.name, spec.version)

        try:
            async with httpx.AsyncClient(
                base_url=self._registry_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"npm registry unreachable while resolving '{spec.name}': {exc}",
                cause=exc,
            ) from exc

        if response.status_code == 404:
            raise ResolutionError(
                ResolutionFailure.NOT_FOUND,
                spec.name,
                f"Package '{spec.name}' ({spec.version}) not found in npm registry",
            )
        if response.status_code >= 400:
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"npm registry returned HTTP {response.status_code} for '{spec.name}'",
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ResolutionError(
                ResolutionFailure.REGISTRY_UNREACHABLE,
                spec.name,
                f"npm registry returned malformed JSON for '{spec.name}'",
                cause=exc,
            ) from exc

        version = data.get("version") if isinstance(data, dict) else None
        if not version:
            raise ResolutionError(
                ResolutionFailure.NOT_FOUND,
                spec.name,
                f"npm registry has no version '{spec.version}' for '{spec.name}'",
            )

        metadata = PackageMetadata(
            name=data.get("name") or spec.name,
            version=version,
            description=normalize_description(data.get("description")),
            keywords=normalize_keywords(data.get("keywords")),
        )
        logger.info("Resolved %s to version %s", metadata.name, metadata.version)
        return metadata
