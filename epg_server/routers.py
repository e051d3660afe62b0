from typing import Annotated
from urllib.parse import parse_qsl, unquote
import logging
import secrets

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse, Response

from epg_server.config import CustomSettings
from epg_server.dependencies import (
    get_admission_gate,
    get_query_service,
    get_response_cache,
    get_settings,
)
from epg_server.schemas import HealthResponse
from epg_server.services import (
    AdmissionGate,
    AdmissionRequest,
    EPGQueryService,
    ResponseCache,
    Schema,
    cache_scheduler,
    get_client_ip,
    guide_file,
    is_live_request,
    read_playlist,
)
from epg_server.utils.channel_names import clean_channel_name
from epg_server.utils.logging_helpers import ACCESS_LOGGER_NAME, log_access
from epg_server.utils.timezone import parse_date_param


logger = logging.getLogger(__name__)
access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

main_router = APIRouter()

JSON_HEADERS = {"Access-Control-Allow-Origin": "*"}
GUIDE_NOT_GENERATED = "404 Not Found. <br>未生成 xmltv 文件"
FILE_NOT_FOUND = "文件不存在"


def parse_query_params(raw_query: str) -> dict[str, str]:
    """
    Parse the raw query string the way legacy players send it

    Extra '?' separators are treated as '&', and '5+' stays a literal plus
    so channels like CCTV5+ are not turned into 'CCTV5 '. Later duplicates win.
    """
    query = raw_query.replace("?", "&").replace("5+", "5%2B")
    return dict(parse_qsl(query, keep_blank_values=True))


@main_router.get("/")
@main_router.get("/index.php")
async def epg_entry(
    request: Request,
    settings: Annotated[CustomSettings, Depends(get_settings)],
    gate: Annotated[AdmissionGate, Depends(get_admission_gate)],
    query_service: Annotated[EPGQueryService, Depends(get_query_service)],
) -> Response:
    """
    EPG entry point

    ``ch`` returns diyp JSON, ``channel`` returns lovetv JSON, ``type=m3u|txt``
    returns a live playlist and no channel returns the XMLTV guide file.
    """
    params = parse_query_params(request.url.query)
    output_type = params.get("type")
    is_live = is_live_request(output_type)

    denied = await _admit(request, gate, params, is_live)
    if denied is not None:
        return denied

    if is_live:
        content = await read_playlist(settings, output_type, params.get("url") or None)
        if content is None:
            return PlainTextResponse(FILE_NOT_FOUND, status_code=404)
        return PlainTextResponse(content)

    ori_channel_name = params["ch"] if "ch" in params else params.get("channel", "")
    clean_name = clean_channel_name(ori_channel_name, settings.cht_to_chs)
    date = parse_date_param(params.get("date"), settings.timezone)

    if clean_name == "":
        return _guide_response(settings, output_type or "xml")

    schema = Schema.DIYP if "ch" in params else Schema.LOVETV
    body = await query_service.get_document(date, ori_channel_name, clean_name, schema)
    return Response(content=body, media_type="application/json", headers=JSON_HEADERS)


async def _admit(
    request: Request,
    gate: AdmissionGate,
    params: dict[str, str],
    is_live: bool,
) -> Response | None:
    """Run the admission checks and write the access log; returns the 403 response on denial"""
    client_ip = get_client_ip(request.headers, request.client.host if request.client else None)
    user_agent = request.headers.get("user-agent", "")
    decision = await gate.decide(
        AdmissionRequest(
            token=params.get("token", ""),
            user_agent=user_agent,
            client_ip=client_ip,
            is_live=is_live,
        )
    )

    url = unquote(f"{request.url.path}?{request.url.query}" if request.url.query else request.url.path)
    log_access(access_logger, client_ip, request.method, url, user_agent or "unknown", decision.message)

    if not decision.allowed:
        logger.info(f"Denied {client_ip}: {decision.reason.value}")
        return PlainTextResponse(decision.message, status_code=403)
    return None


def _guide_response(settings: CustomSettings, output_type: str) -> Response:
    """Serve the generated XMLTV file as an attachment"""
    if not settings.gen_xml:
        return HTMLResponse(GUIDE_NOT_GENERATED, status_code=404)

    guide = guide_file(settings, output_type)
    if not guide.path.is_file():
        logger.warning(f"XMLTV generation enabled but {guide.path} is missing")
        return HTMLResponse(GUIDE_NOT_GENERATED, status_code=404)

    return FileResponse(
        guide.path,
        media_type=guide.media_type,
        filename=guide.filename,
    )


@main_router.get("/t.xml")
async def guide_xml(
    request: Request,
    settings: Annotated[CustomSettings, Depends(get_settings)],
    gate: Annotated[AdmissionGate, Depends(get_admission_gate)],
) -> Response:
    """Generated XMLTV guide"""
    denied = await _admit(request, gate, parse_query_params(request.url.query), is_live=False)
    return denied or _guide_response(settings, "xml")


@main_router.get("/t.xml.gz")
async def guide_xml_gz(
    request: Request,
    settings: Annotated[CustomSettings, Depends(get_settings)],
    gate: Annotated[AdmissionGate, Depends(get_admission_gate)],
) -> Response:
    """Generated XMLTV guide, gzip compressed"""
    denied = await _admit(request, gate, parse_query_params(request.url.query), is_live=False)
    return denied or _guide_response(settings, "gz")


@main_router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    cache: Annotated[ResponseCache, Depends(get_response_cache)],
) -> HealthResponse:
    """Health check endpoint"""
    next_run = cache_scheduler.get_next_run_time()
    return HealthResponse(
        status="ok",
        cache_backend=cache.name,
        database=getattr(request.app.state, "database_ready", False),
        next_cache_sweep=next_run.isoformat() if next_run else None,
    )


@main_router.post("/cache/clear")
async def clear_cache(
    settings: Annotated[CustomSettings, Depends(get_settings)],
    cache: Annotated[ResponseCache, Depends(get_response_cache)],
    x_admin_token: Annotated[str, Header()] = "",
) -> Response:
    """
    Drop all cached EPG responses

    Called by the update job after it rewrites epg_data. Requires the
    configured admin token in the X-Admin-Token header.
    """
    if not settings.admin_token or not secrets.compare_digest(
        x_admin_token.encode("utf-8"), settings.admin_token.encode("utf-8")
    ):
        logger.warning("Rejected cache clear request without a valid admin token")
        return JSONResponse({"detail": "Forbidden"}, status_code=403)

    logger.info("Response cache cleared via API")
    await cache.clear()
    return JSONResponse({"status": "ok", "cache_backend": cache.name})
