"""Subscription and reactive layer.

Registrations, priority-ordered subscriber lists and autorun bookkeeping.
Only this package decides who is notified when a signature's data changes.
"""
