"""
Payments app: the Stripe side of the escrow flow.

- adapters: StripeAdapter, the only code that talks to Stripe
- webhooks: signed event ingestion and the event-type handler registry
- tasks: asynchronous event processing and retry
- locks: Redis distributed lock and optimistic version checks

The escrow ledger that these components update lives in ``orders``.
"""
