"""Core (UI-agnostic) mobility dashboard logic.

This package contains:
- data loading with fallback (uploaded files -> base URLs)
- filter normalization
- chart compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
