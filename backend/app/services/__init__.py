"""Business Logic Services.

This package contains all service modules that implement the
MeetingLingo realtime translation relay.

Service Categories:
- Audio: Audio frames and the per-session drain queue
- Connection: Relay registry and listener fan-out
- Session: Per-connection relay orchestration and lifecycle states
- Translation: Upstream bridge, utterance tracking, translation logging
- Core: Session Store repository

Cross-cutting:
- exceptions: Relay error taxonomy
- protocols: Collaborator interfaces
- entitlements: Monthly usage quota gate
- metrics: Prometheus instrumentation
"""
