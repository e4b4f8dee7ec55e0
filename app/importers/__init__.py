"""Bulk import of CMS reference datasets into the reference store."""
