"""pbx-reconcile: configuration reconciliation and backup engine for a PBX.

Keeps extension records stored in the database in agreement with the
telephony engine's PJSIP configuration and live endpoint registry, and
protects every configuration write with deduplicated backups.
"""

__version__ = "0.1.0"
