"""Azure Functions entry point for the Historic Borders pipeline.

This module registers the HTTP functions using the Python v2 programming
model with the FastAPI HTTP streaming extension.

All business logic lives in the historic_borders package. This file is
purely the wiring layer between HTTP routes and application code.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import AsyncIterator

import azure.functions as func
from azurefunctions.extensions.http.fastapi import JSONResponse, Request, StreamingResponse

from historic_borders.core.cache import ResilientCache
from historic_borders.core.config import PipelineConfig
from historic_borders.core.exceptions import ValidationError
from historic_borders.core.ingress import (
    CORRELATION_HEADER,
    error_payload,
    http_status_for,
    new_correlation_id,
    optional_year,
)
from historic_borders.core.streaming import StreamingCacheProxy
from historic_borders.models.payloads import DescriptionResponse, YearsResponse
from historic_borders.models.profile import PA_SCHOOL_DISTRICTS
from historic_borders.orchestrators.borders_pipeline import BordersPipeline
from historic_borders.providers.descriptions import (
    CachedDescriptionProvider,
    DescriptionChain,
    DescriptionProvider,
    WikipediaSearchProvider,
    WikipediaSummaryProvider,
)
from historic_borders.providers.github import GitHubDatasetSource
from historic_borders.utils.years import format_year

app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)

logger = logging.getLogger("historic_borders.function_app")


# ---------------------------------------------------------------------------
# Shared services (one cache connection per worker process)
# ---------------------------------------------------------------------------


@functools.cache
def _pipeline() -> BordersPipeline:
    config = PipelineConfig.from_env()
    cache = ResilientCache(config.cache_config())
    source = GitHubDatasetSource(
        raw_base_url=config.borders_base_url,
        api_base_url=config.github_api_url,
        token=config.github_token,
        timeout_s=config.upstream_timeout_s,
    )
    proxy = StreamingCacheProxy(cache, upstream_timeout_s=config.upstream_timeout_s)
    logger.info(
        "Pipeline services initialised | cache_enabled=%s | districts_configured=%s",
        cache.enabled,
        bool(config.districts_url),
    )
    return BordersPipeline(source, config=config, cache=cache, proxy=proxy)


@functools.cache
def _describer() -> DescriptionProvider:
    pipeline = _pipeline()
    chain = DescriptionChain((WikipediaSummaryProvider(), WikipediaSearchProvider()))
    return CachedDescriptionProvider(chain, pipeline.cache)


def _error_response(exc: Exception, correlation_id: str, route: str) -> JSONResponse:
    status = http_status_for(exc)
    if status >= 500:
        logger.exception("Request failed | route=%s | correlation_id=%s", route, correlation_id)
    else:
        logger.warning(
            "Request rejected | route=%s | status=%d | correlation_id=%s | error=%s",
            route,
            status,
            correlation_id,
            exc,
        )
    return JSONResponse(
        error_payload(exc, correlation_id=correlation_id),
        status_code=status,
        headers={CORRELATION_HEADER: correlation_id},
    )


# ---------------------------------------------------------------------------
# HTTP: Historic borders
# ---------------------------------------------------------------------------


@app.function_name("borders_for_year")
@app.route(route="borders/{owner}/{dataset}/{year}", methods=[func.HttpMethod.GET])
async def borders_for_year(req: Request) -> JSONResponse:
    """Return ``{"data": {"borders", "labels"}, "places"}`` for one year."""
    correlation_id = new_correlation_id(req.headers)
    owner = req.path_params.get("owner", "")
    dataset = req.path_params.get("dataset", "")
    year = req.path_params.get("year", "")

    logger.info(
        "Borders request | owner=%s | dataset=%s | year=%s | correlation_id=%s",
        owner,
        dataset,
        year,
        correlation_id,
    )
    try:
        body = await _pipeline().borders_for_year(owner, dataset, year)
    except Exception as exc:
        return _error_response(exc, correlation_id, "borders_for_year")
    return JSONResponse(body, headers={CORRELATION_HEADER: correlation_id})


@app.function_name("available_years")
@app.route(route="borders/{owner}/{dataset}", methods=[func.HttpMethod.GET])
async def available_years(req: Request) -> JSONResponse:
    """Return the years that have a boundary file, ascending."""
    correlation_id = new_correlation_id(req.headers)
    owner = req.path_params.get("owner", "")
    dataset = req.path_params.get("dataset", "")
    try:
        years = await _pipeline().available_years(owner, dataset)
    except Exception as exc:
        return _error_response(exc, correlation_id, "available_years")
    body: YearsResponse = {"years": years, "tokens": [format_year(y) for y in years]}
    return JSONResponse(body, headers={CORRELATION_HEADER: correlation_id})


# ---------------------------------------------------------------------------
# HTTP: School districts (large upstream file)
# ---------------------------------------------------------------------------


@app.function_name("school_districts")
@app.route(route="pa-school-districts", methods=[func.HttpMethod.GET])
async def school_districts(req: Request) -> JSONResponse:
    """Return processed district borders and labels (cached per edition)."""
    correlation_id = new_correlation_id(req.headers)
    try:
        body = await _pipeline().districts()
    except Exception as exc:
        return _error_response(exc, correlation_id, "school_districts")
    return JSONResponse(body, headers={CORRELATION_HEADER: correlation_id})


@app.function_name("school_districts_raw")
@app.route(route="pa-school-districts/raw", methods=[func.HttpMethod.GET])
async def school_districts_raw(req: Request) -> StreamingResponse | JSONResponse:
    """Stream the raw district GeoJSON through the cache.

    The first chunk is read before the response starts so an upstream
    failure is still reported with an error status.
    """
    correlation_id = new_correlation_id(req.headers)
    try:
        pipeline = _pipeline()
        url = pipeline.districts_url()
        chunks = pipeline.proxy.stream(
            pipeline.districts_raw_key(),
            url,
            ttl_seconds=PA_SCHOOL_DISTRICTS.cache_ttl_seconds or pipeline.config.cache_ttl_seconds,
            write_timeout=pipeline.config.cache_large_op_timeout_s,
            read_timeout=pipeline.config.cache_large_op_timeout_s,
        )
        first = await anext(chunks, b"")
    except Exception as exc:
        return _error_response(exc, correlation_id, "school_districts_raw")

    async def _body() -> AsyncIterator[bytes]:
        yield first
        async for chunk in chunks:
            yield chunk

    return StreamingResponse(
        _body(),
        media_type="application/geo+json",
        headers={CORRELATION_HEADER: correlation_id},
    )


# ---------------------------------------------------------------------------
# HTTP: Entity descriptions
# ---------------------------------------------------------------------------


@app.function_name("describe_entity")
@app.route(route="describe", methods=[func.HttpMethod.GET])
async def describe_entity(req: Request) -> JSONResponse:
    """Return a short description for ``?name=`` (optionally ``&year=``)."""
    correlation_id = new_correlation_id(req.headers)
    name = (req.query_params.get("name") or "").strip()
    try:
        if not name:
            msg = "Query parameter 'name' is required"
            raise ValidationError(msg, stage="ingress", code="MISSING_NAME")
        year = optional_year(req.query_params.get("year"))
        content = await _describer().describe(name, year)
    except Exception as exc:
        return _error_response(exc, correlation_id, "describe_entity")
    body: DescriptionResponse = {
        "name": name,
        "year": "" if year is None else format_year(year),
        "content": content,
    }
    return JSONResponse(body, headers={CORRELATION_HEADER: correlation_id})
