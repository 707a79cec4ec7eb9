"""
ngo_portal/connectors package marker.
"""

from ngo_portal.connectors.portal_api_client import PortalAPIClient, unwrap_envelope

__all__ = [
    "PortalAPIClient",
    "unwrap_envelope",
]
