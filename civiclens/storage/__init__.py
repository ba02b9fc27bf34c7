"""
Storage Module.

Record store backends (in-memory, JSON file) and the typed repository
every agent reads and writes through.
"""
