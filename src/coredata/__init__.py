"""coredata: document-store access layer for device events and readings.

This package contains the data client used by the core data service to
persist events, readings and value descriptors, the settings shared with the
companion export client, and the maintenance jobs that prune stored events.
"""
