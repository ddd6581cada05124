"""Pipeline stages: ingest, clustering, source weighting, and the per-cluster
enrichment steps (category, summary, translation, seo, images, publish).

Enrichment stages take an ``EnrichmentContext`` and return typed results;
only ``publish`` writes to the store.
"""
