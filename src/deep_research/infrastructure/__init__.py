"""
Infrastructure Layer - External Systems Integration

Contains:
- sources: bibliographic provider adapters and their registry
- persistence: session store boundary and JSON file implementation
"""
