"""
Vendor discovery pipeline.

Discovery jobs (area x specialty) run on a schedule or on demand. Each run
asks the LLM for vendor candidates, de-duplicates them against staged and
live vendors, checks their websites and stages them for human review.
"""
