"""SessionGuard services.

- safety_monitor: classifies live transcript chunks and manages the
  resulting alerts. Emits events; writes nothing durable.
"""
