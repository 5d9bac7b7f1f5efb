"""Episode tracker — lifecycle state for attacks and tag vocabularies.

Modules
───────
  store        — EventStore: active/historical attacks, vocabularies
  persistence  — load/save the store through the key/value records
  cli          — argparse entry-point
"""
