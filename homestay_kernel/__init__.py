"""
Homestay Kernel

Application lifecycle for homestay registrations:
- Role- and district-gated status transitions declared as data
- Append-only, hash-linked audit trail of every transition
- Derived service requests (renewal, room changes, cancellation)
- Outbox of notification events written in the transition's transaction
"""

__version__ = "0.1.0"
