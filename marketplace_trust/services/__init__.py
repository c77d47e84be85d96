"""
Services package - Business logic layer
"""
from marketplace_trust.services.taxonomy_service import taxonomy_service
from marketplace_trust.services.event_store_service import event_store_service
from marketplace_trust.services.aggregation_service import aggregation_service
from marketplace_trust.services.transition_service import transition_service
from marketplace_trust.services.snapshot_service import snapshot_service
from marketplace_trust.services.trust_service import trust_service
from marketplace_trust.services.guidance_service import guidance_service

__all__ = [
    "taxonomy_service",
    "event_store_service",
    "aggregation_service",
    "transition_service",
    "snapshot_service",
    "trust_service",
    "guidance_service"
]
