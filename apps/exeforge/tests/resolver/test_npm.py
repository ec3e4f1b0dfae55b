"""Tests for the npm registry resolver, using httpx.MockTransport."""

import httpx
import pytest

from exeforge.resolver.npm import NpmResolver
from exeforge.resolver.types import (
    DEFAULT_DESCRIPTION,
    PackageResolver,
    PackageSpec,
    ResolutionError,
    ResolutionFailure,
)


def _resolver(handler) -> NpmResolver:
    return NpmResolver(
        registry_url="https://registry.test",
        transport=httpx.MockTransport(handler),
    )


class TestNpmResolver:
    def test_satisfies_protocol(self):
        assert isinstance(NpmResolver(), PackageResolver)

    async def test_resolves_latest(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.raw_path.decode()
            return httpx.Response(
                200,
                json={
                    "name": "cowsay",
                    "version": "1.6.0",
                    "description": "cowsay is a configurable talking cow",
                    "keywords": ["cow", "ascii"],
                },
            )

        metadata = await _resolver(handler).resolve(PackageSpec("cowsay", "npm"))

        assert seen["path"] == "/cowsay/latest"
        assert metadata.name == "cowsay"
        assert metadata.version == "1.6.0"
        assert metadata.description == "cowsay is a configurable talking cow"
        assert metadata.keywords == ("cow", "ascii")

    async def test_exact_version_in_path(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.raw_path.decode()
            return httpx.Response(200, json={"name": "left-pad", "version": "1.3.0"})

        metadata = await _resolver(handler).resolve(PackageSpec("left-pad", "npm", "1.3.0"))

        assert seen["path"] == "/left-pad/1.3.0"
        assert metadata.version == "1.3.0"

    async def test_scoped_name_is_escaped(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.raw_path.decode()
            return httpx.Response(200, json={"name": "@scope/tool", "version": "2.0.0"})

        await _resolver(handler).resolve(PackageSpec("@scope/tool", "npm"))

        assert seen["path"] == "/@scope%2Ftool/latest"

    async def test_missing_fields_get_defaults(self):
        def handler(request):
            return httpx.Response(200, json={"version": "0.0.1"})

        metadata = await _resolver(handler).resolve(PackageSpec("bare", "npm"))

        assert metadata.name == "bare"
        assert metadata.description == DEFAULT_DESCRIPTION
        assert metadata.keywords == ()

    async def test_404_is_not_found(self):
        def handler(request):
            return httpx.Response(404, json={"error": "Not found"})

        with pytest.raises(ResolutionError) as exc_info:
            await _resolver(handler).resolve(PackageSpec("nonexistent-xyz-123", "npm"))

        assert exc_info.value.reason is ResolutionFailure.NOT_FOUND
        assert exc_info.value.package == "nonexistent-xyz-123"
        assert "not found" in str(exc_info.value)

    async def test_server_error_is_unreachable(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(ResolutionError) as exc_info:
            await _resolver(handler).resolve(PackageSpec("cowsay", "npm"))

        assert exc_info.value.reason is ResolutionFailure.REGISTRY_UNREACHABLE

    async def test_transport_error_is_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ResolutionError) as exc_info:
            await _resolver(handler).resolve(PackageSpec("cowsay", "npm"))

        assert exc_info.value.reason is ResolutionFailure.REGISTRY_UNREACHABLE
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    async def test_malformed_json_is_unreachable(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(ResolutionError) as exc_info:
            await _resolver(handler).resolve(PackageSpec("cowsay", "npm"))

        assert exc_info.value.reason is ResolutionFailure.REGISTRY_UNREACHABLE

    async def test_document_without_version_is_not_found(self):
        def handler(request):
            return httpx.Response(200, json={"name": "cowsay"})

        with pytest.raises(ResolutionError) as exc_info:
            await _resolver(handler).resolve(PackageSpec("cowsay", "npm", "99.0.0"))

        assert exc_info.value.reason is ResolutionFailure.NOT_FOUND
