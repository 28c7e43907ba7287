"""
Reference taxonomy for locations and business types.

Responsibilities:
- Load hierarchical list items (city/area/neighbourhood, category/subcategory)
  from the backend and keep them in a TTL cache.
- Derive descendant maps and flattened, sorted, searchable views.
- Decide autocomplete state and when a free-text value is a new item.
"""
