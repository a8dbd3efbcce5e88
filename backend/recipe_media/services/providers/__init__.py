"""Media hosting provider implementations.

Each provider module implements the direct-upload pattern:
  POST create upload target → client transfers bytes → query status
"""
