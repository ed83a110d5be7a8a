"""Deterministic tools: deduplication, routing, validation, assembly, I/O."""

from .complexity_router import classify_image, route_images
from .cost_ledger import CostLedger, token_cost
from .deduplicator import deduplicate_images, deduplicate_pages, fingerprint
from .document_assembler import assemble_document
from .partition_validator import validate_partition

__all__ = [
    "CostLedger",
    "assemble_document",
    "classify_image",
    "deduplicate_images",
    "deduplicate_pages",
    "fingerprint",
    "route_images",
    "token_cost",
    "validate_partition",
]
