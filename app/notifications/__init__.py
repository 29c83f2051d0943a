"""
Notifications app for payment notifications.

This app provides:
- PaymentNotification model addressed to billing principals
- NotificationDispatcher, called by the payments core after commit
- Celery task that records notifications asynchronously

Usage:
    from notifications.services import NotificationDispatcher

    NotificationDispatcher.dispatch(
        principal_id=org_id,
        kind="bounty_funded",
        bounty_id="B1",
        amount_minor_units=10000,
    )
"""
