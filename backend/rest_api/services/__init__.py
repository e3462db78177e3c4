"""
Services module for business logic.

- domain/: order intake, status lifecycle, notifications, restaurant profile
- events/: order snapshots fanned out to the real-time channels
- payments/: split-payment gateway client and settlement reconciliation

Usage:
    from rest_api.services.domain import OrderService
    service = OrderService(store, events)
    result = await service.create_order(request)
"""
