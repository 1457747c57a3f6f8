"""
FastAPI REST API for docrag.

Endpoints:
    POST /projects/{id}/ingest - Parse and chunk project documents
    POST /projects/{id}/embed  - Embed pending chunks
    GET  /projects/{id}/embed  - Embedding progress
    GET  /projects/{id}/diagnose - Document and chunk breakdown
    POST /projects/{id}/search - Retrieve relevant passages with citations
    GET  /health               - Health check for k8s probes
"""

from docrag.api.main import app, create_app

__all__ = ["app", "create_app"]
