"""
Services package for EPG Server

This package contains the admission gate and the EPG response pipeline.
"""
from epg_server.services.admission_service import AdmissionGate, get_client_ip, is_live_request
from epg_server.services.channel_resolver import ChannelResolver
from epg_server.services.epg_query_service import EPGQueryService
from epg_server.services.epg_types import AdmissionDecision, AdmissionRequest, DenyReason, Schema
from epg_server.services.response_cache import ResponseCache, create_response_cache
from epg_server.services.response_synthesizer import ResponseSynthesizer
from epg_server.services.scheduler_service import cache_scheduler
from epg_server.services.static_file_service import guide_file, read_playlist

__all__ = [
    'AdmissionDecision',
    'AdmissionGate',
    'AdmissionRequest',
    'ChannelResolver',
    'DenyReason',
    'EPGQueryService',
    'ResponseCache',
    'ResponseSynthesizer',
    'Schema',
    'cache_scheduler',
    'create_response_cache',
    'get_client_ip',
    'guide_file',
    'is_live_request',
    'read_playlist',
]
