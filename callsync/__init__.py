"""
📞 CallSync Package Init
------------------------
Teli voice-agent call ingestion into the Airtable-backed CRM.

Import the FastAPI app from ``callsync.main``; the sync entry points live in
``callsync.call_sync`` (one business) and ``callsync.org_sync`` (organization).
"""

__version__ = "1.0.0"
