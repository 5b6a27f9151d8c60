"""Export helpers (grids, Markdown, JSON views, Excel workbooks)."""
