"""
Ingestion Layer for the matchmaking core.

This package turns raw attendee rosters and badge scans into validated,
deduplicated records and their consent-gated public Actor projections.

Key Components:
- AttendeeIngestionPipeline: Bulk roster import with merge strategies
- ScanProcessor: Badge-scan recording with mutual consent checks
- ActorMaterializer: Attendee -> Actor directory projection
"""
