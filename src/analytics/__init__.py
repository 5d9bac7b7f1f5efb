"""Episode analytics — derived, read-only statistics.

Modules
───────
  engine    — frequency series, severity heatmap, top-tag rankings
  suggest   — ranked tag suggestions for a typed query
  frames    — pandas DataFrames for export and plotting
  reporter  — write CSV, TXT, PNG outputs
"""
