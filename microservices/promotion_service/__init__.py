"""
Promotion Service

Ad-campaign ledger for the classifieds marketplace providing:
- Campaign lifecycle (create, approve, reject, pause/resume, stop)
- Prepaid wallet debits and refunds kept in lockstep with campaign status
- Listing promotion flags (is_promoted / active_campaign_id)
- Ad pricing table administration
- Notification outbox relay
"""

__version__ = "1.0.0"
__service__ = "promotion_service"
