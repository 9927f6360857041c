# ============================================================================
# leakprobe/__init__.py
# Package Marker for the leakprobe client
# ============================================================================
#
# PURPOSE:
# Probes which network addresses a client exposes through WebRTC candidate
# gathering, geolocates them, and ships one consolidated report to a log sink.
#
# LAYOUT:
# - base/       configuration and the run-scoped context
# - recon/      candidate collection, address parsing, fingerprint probes
# - net/        outbound HTTP and geolocation lookups
# - reporting/  report assembly, formatting, delivery
# - engine/     one end-to-end pipeline execution
# - server/     reference append-only log receiver
#
# ============================================================================

__version__ = "0.3.0"
