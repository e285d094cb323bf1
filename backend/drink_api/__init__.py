"""
FastAPI backend for drink sync.

Provides REST API endpoints for:
- Syncing scraped drinks into the products table
- Looking up stored drinks by checksum
- Reading the subcategory map
"""
