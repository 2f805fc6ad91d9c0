"""Centralized constants for statuses, event types and sources.

This module provides a single source of truth for the string vocabularies
shared by the emitter, the differ, the event log and the routers.
"""

from typing import Dict, FrozenSet

# =============================================================================
# STATUSES
# =============================================================================

STATUS_OPERATIONAL = 'operational'
STATUS_DEGRADED = 'degraded'
STATUS_OUTAGE = 'outage'
STATUS_UNKNOWN = 'unknown'

SERVICE_STATUSES: FrozenSet[str] = frozenset([
    STATUS_OPERATIONAL,
    STATUS_DEGRADED,
    STATUS_OUTAGE,
    STATUS_UNKNOWN,
])

# Statuses a resolution can follow
BAD_STATUSES: FrozenSet[str] = frozenset([STATUS_DEGRADED, STATUS_OUTAGE])

# Higher number = more severe
STATUS_PRIORITY: Dict[str, int] = {
    STATUS_UNKNOWN: 0,
    STATUS_OPERATIONAL: 1,
    STATUS_DEGRADED: 2,
    STATUS_OUTAGE: 3,
}

# Liveness marker stored in tracking rows for set-valued entities
TRACKING_OPEN = 'open'

# =============================================================================
# SEVERITIES
# =============================================================================

SEVERITY_INFO = 'info'
SEVERITY_WARNING = 'warning'
SEVERITY_CRITICAL = 'critical'

VALID_SEVERITIES: FrozenSet[str] = frozenset([
    SEVERITY_INFO,
    SEVERITY_WARNING,
    SEVERITY_CRITICAL,
])

# Upstream incident severities that map to a critical event
CRITICAL_MEMBER_SEVERITIES: FrozenSet[str] = frozenset([
    'critical',
    'major',
    'high',
    'outage',
])

# =============================================================================
# EVENT SOURCES
# =============================================================================

SOURCE_SERVICE = 'service'
SOURCE_CLOUD = 'cloud'
SOURCE_M365 = 'm365'
SOURCE_GWORKSPACE = 'gworkspace'
SOURCE_ISP = 'isp'
SOURCE_RADAR = 'radar'

VALID_EVENT_SOURCES: FrozenSet[str] = frozenset([
    SOURCE_SERVICE,
    SOURCE_CLOUD,
    SOURCE_M365,
    SOURCE_GWORKSPACE,
    SOURCE_ISP,
    SOURCE_RADAR,
])

SOURCE_LABELS: Dict[str, str] = {
    SOURCE_SERVICE: 'Services',
    SOURCE_CLOUD: 'Cloud',
    SOURCE_M365: 'Microsoft 365',
    SOURCE_GWORKSPACE: 'Google Workspace',
    SOURCE_ISP: 'ISP',
    SOURCE_RADAR: 'Security',
}

# =============================================================================
# EVENT TYPES
# =============================================================================

# Services
EVENT_SERVICE_OUTAGE = 'outage'
EVENT_SERVICE_DEGRADED = 'degraded'
EVENT_RESOLVED = 'resolved'

# Cloud
EVENT_CLOUD_INCIDENT_STARTED = 'incident_started'
EVENT_CLOUD_INCIDENT_RESOLVED = 'incident_resolved'

# M365 / Workspace
EVENT_ISSUE_STARTED = 'service_issue'
EVENT_ISSUE_RESOLVED = 'issue_resolved'

# ISP
EVENT_ISP_DEGRADED = 'connectivity_degraded'
EVENT_ISP_OUTAGE = 'connectivity_outage'
EVENT_ISP_BGP = 'bgp_incident'

# Radar
EVENT_RADAR_L3_SPIKE = 'ddos_spike_layer3'
EVENT_RADAR_L7_SPIKE = 'ddos_spike_layer7'

RESOLUTION_EVENT_TYPES: FrozenSet[str] = frozenset([
    EVENT_RESOLVED,
    EVENT_CLOUD_INCIDENT_RESOLVED,
    EVENT_ISSUE_RESOLVED,
])

CRITICAL_EVENT_TYPES: FrozenSet[str] = frozenset([
    EVENT_ISP_OUTAGE,
    EVENT_ISP_BGP,
    EVENT_RADAR_L3_SPIKE,
    EVENT_RADAR_L7_SPIKE,
])

# Scalar sources: status -> event type
SCALAR_EVENT_TYPES: Dict[str, Dict[str, str]] = {
    SOURCE_SERVICE: {
        STATUS_OUTAGE: EVENT_SERVICE_OUTAGE,
        STATUS_DEGRADED: EVENT_SERVICE_DEGRADED,
        STATUS_OPERATIONAL: EVENT_RESOLVED,
    },
    SOURCE_ISP: {
        STATUS_OUTAGE: EVENT_ISP_OUTAGE,
        STATUS_DEGRADED: EVENT_ISP_DEGRADED,
        STATUS_OPERATIONAL: EVENT_RESOLVED,
    },
}

# Set-valued sources: (tracking entity type, started type, resolved type)
INCIDENT_SOURCES: Dict[str, Dict[str, str]] = {
    SOURCE_CLOUD: {
        'entity_type': 'cloud-incident',
        'started': EVENT_CLOUD_INCIDENT_STARTED,
        'resolved': EVENT_CLOUD_INCIDENT_RESOLVED,
    },
    SOURCE_M365: {
        'entity_type': 'm365-issue',
        'started': EVENT_ISSUE_STARTED,
        'resolved': EVENT_ISSUE_RESOLVED,
    },
    SOURCE_GWORKSPACE: {
        'entity_type': 'gworkspace-issue',
        'started': EVENT_ISSUE_STARTED,
        'resolved': EVENT_ISSUE_RESOLVED,
    },
}

# Attack layer -> spike event type
ATTACK_SPIKE_EVENT_TYPES: Dict[str, str] = {
    'layer3': EVENT_RADAR_L3_SPIKE,
    'layer7': EVENT_RADAR_L7_SPIKE,
}

# =============================================================================
# CHANGE NOTIFICATION DOMAINS
# =============================================================================

# Domain -> observation entity types written by that domain
CHANGE_DOMAINS: Dict[str, FrozenSet[str]] = {
    'services': frozenset([SOURCE_SERVICE]),
    'cloud': frozenset([SOURCE_CLOUD]),
    'm365': frozenset([SOURCE_M365, SOURCE_GWORKSPACE]),
    'internet': frozenset([SOURCE_ISP]),
    'radar': frozenset([SOURCE_RADAR]),
}

# Source -> domain (reverse of CHANGE_DOMAINS)
SOURCE_DOMAINS: Dict[str, str] = {
    source: domain
    for domain, sources in CHANGE_DOMAINS.items()
    for source in sources
}

# =============================================================================
# CACHE
# =============================================================================

CACHE_SOURCE_API_RESPONSE = 'api-response'
